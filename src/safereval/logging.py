# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Structured logging helpers for :mod:`safereval`."""

from __future__ import annotations

import json
import logging
import logging.config
import os
from collections.abc import Mapping, MutableMapping
from datetime import UTC, datetime
from typing import Any, cast, override

__all__ = [
    "LOG_FORMAT_ENV",
    "LOG_LEVELS",
    "LOG_LEVEL_ENV",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
]

LOG_LEVEL_ENV = "SAFEREVAL_LOG_LEVEL"
LOG_FORMAT_ENV = "SAFEREVAL_LOG_FORMAT"
_LEVEL_NAMES = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "NOTSET": logging.NOTSET,
}
LOG_LEVELS = tuple(_LEVEL_NAMES)


class StructuredLogger(logging.LoggerAdapter[logging.Logger]):
    """Logger adapter that attaches an ``event`` name and a context payload.

    Every record emitted through the adapter carries two extra attributes:
    ``event`` (required, a dotted event name) and ``context`` (the bound
    context merged with any per-call ``context=`` mapping and stray
    ``extra`` keys).
    """

    def __init__(
        self,
        logger: logging.Logger,
        *,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(logger, dict(context) if context is not None else {})

    def bind(self, **context: object) -> StructuredLogger:
        """Return a new adapter with ``context`` merged into the bound payload."""

        bound = cast(Mapping[str, object], self.extra)
        return type(self)(self.logger, context={**bound, **context})

    @override
    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        extra = kwargs.get("extra")
        if extra is None:
            extra = {}
        if not isinstance(extra, MutableMapping):
            raise TypeError("Structured logs require a mutable mapping for extra.")
        extra_mapping = cast(MutableMapping[str, object], extra)

        payload: dict[str, object] = dict(cast(Mapping[str, object], self.extra))
        inline = kwargs.pop("context", None)
        if inline is not None:
            if not isinstance(inline, Mapping):
                raise TypeError("context must be a mapping when provided.")
            payload.update(cast(Mapping[str, object], inline))

        event = kwargs.pop("event", None)
        if event is None:
            event = extra_mapping.pop("event", None)
        if not isinstance(event, str):
            raise TypeError("Structured logs require an 'event' field.")
        payload.update(
            (key, value) for key, value in extra_mapping.items() if key != "event"
        )

        kwargs["extra"] = {"event": event, "context": payload}
        return msg, kwargs


def get_logger(
    name: str,
    *,
    context: Mapping[str, object] | None = None,
) -> StructuredLogger:
    """Return a :class:`StructuredLogger` scoped to ``name``."""

    return StructuredLogger(logging.getLogger(name), context=context)


def configure_logging(
    *,
    level: int | str | None = None,
    json_mode: bool | None = None,
    env: Mapping[str, str] | None = None,
    force: bool = False,
) -> None:
    """Configure the root logger for command line use.

    ``level`` and ``json_mode`` fall back to ``SAFEREVAL_LOG_LEVEL`` and
    ``SAFEREVAL_LOG_FORMAT`` (``json`` or ``text``). Existing handlers are
    left alone unless ``force=True``; only the level is adjusted then.
    """

    env = os.environ if env is None else env
    resolved_level = _coerce_level(level or env.get(LOG_LEVEL_ENV))

    if json_mode is None:
        json_mode = env.get(LOG_FORMAT_ENV, "text").lower() == "json"

    root_logger = logging.getLogger()
    if root_logger.handlers and not force:
        root_logger.setLevel(resolved_level)
        return

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "text": {
                    "format": "%(asctime)s %(levelname)s %(name)s %(event)s %(message)s %(context)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
                "json": {"()": "safereval.logging._JsonFormatter"},
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "json" if json_mode else "text",
                }
            },
            "root": {"handlers": ["stderr"], "level": resolved_level},
        }
    )


class _JsonFormatter(logging.Formatter):
    """Render structured records as one compact JSON object per line."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        event = getattr(record, "event", None)
        if event is not None:
            payload["event"] = event
        context = getattr(record, "context", None)
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=repr, separators=(",", ":"))


def _coerce_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        try:
            return _LEVEL_NAMES[level.upper()]
        except KeyError:
            raise TypeError(f"Unknown log level: {level!r}") from None
    return logging.INFO
