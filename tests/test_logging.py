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

"""Tests for structured logging helpers."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager

import pytest

from safereval import api
from safereval.config import EvaluatorConfig
from safereval.logging import (
    LOG_FORMAT_ENV,
    LOG_LEVEL_ENV,
    _coerce_level,
    _JsonFormatter,
    configure_logging,
    get_logger,
)


class _CaptureHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


@contextmanager
def _capture(logger: logging.Logger) -> Iterator[list[logging.LogRecord]]:
    handler = _CaptureHandler()
    logger.addHandler(handler)
    try:
        yield handler.records
    finally:
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture(autouse=True)
def reset_logging_state() -> Iterator[None]:
    root = logging.getLogger()
    original_handlers = list(root.handlers)
    original_level = root.level
    try:
        yield
    finally:
        for handler in root.handlers:
            if handler not in original_handlers:
                handler.close()
        root.handlers = original_handlers
        root.setLevel(original_level)


def test_structured_logger_emits_event_and_context() -> None:
    logger = get_logger("tests.logging", context={"component": "unit-test"})
    logger.logger.setLevel(logging.INFO)

    with _capture(logger.logger) as records:
        logger.info("structured", event="tests.event", context={"attempt": 1})

    assert len(records) == 1
    record = records[0]
    assert getattr(record, "event") == "tests.event"
    assert getattr(record, "context") == {"component": "unit-test", "attempt": 1}
    assert record.getMessage() == "structured"


def test_bind_merges_context_without_mutating_parent() -> None:
    parent = get_logger("tests.logging.bind", context={"component": "parent"})
    child = parent.bind(strategy="lexical")

    assert child.extra == {"component": "parent", "strategy": "lexical"}
    assert parent.extra == {"component": "parent"}


def test_extra_keys_fold_into_context() -> None:
    logger = get_logger("tests.logging.extra")
    logger.logger.setLevel(logging.INFO)

    with _capture(logger.logger) as records:
        logger.info("none-extra", event="tests.none", extra=None)
        logger.info("with-extra", extra={"event": "tests.extra", "count": 2})

    assert [getattr(record, "event") for record in records] == [
        "tests.none",
        "tests.extra",
    ]
    assert getattr(records[0], "context") == {}
    assert getattr(records[1], "context") == {"count": 2}


def test_structured_logger_requires_event() -> None:
    logger = get_logger("tests.logging.missing")
    logger.logger.setLevel(logging.INFO)

    with pytest.raises(TypeError):
        logger.info("missing-event", extra={"detail": True})


def test_evaluator_selection_is_logged() -> None:
    base = logging.getLogger("safereval.api")
    previous = base.level
    base.setLevel(logging.DEBUG)
    try:
        with _capture(base) as records:
            _ = api.select_evaluator(EvaluatorConfig(strategy="lexical"))
    finally:
        base.setLevel(previous)

    assert [getattr(record, "event") for record in records] == ["evaluator.selected"]
    assert getattr(records[0], "context") == {
        "component": "api",
        "strategy": "lexical",
    }


def test_evaluation_start_omits_source_text() -> None:
    base = logging.getLogger("safereval.evaluators")
    previous = base.level
    base.setLevel(logging.DEBUG)
    try:
        with _capture(base) as records:
            evaluator = api.select_evaluator(EvaluatorConfig(strategy="lexical"))
            _ = evaluator.evaluate("secret_value", {"secret_value": 1})
    finally:
        base.setLevel(previous)

    assert len(records) == 1
    context = getattr(records[0], "context")
    assert context["code_length"] == len("secret_value")
    assert "secret_value" not in json.dumps(context)


def test_configure_logging_respects_existing_handlers() -> None:
    root = logging.getLogger()
    root_handler = logging.NullHandler()
    root.handlers = [root_handler]

    configure_logging(level="DEBUG", json_mode=True)

    assert root.handlers == [root_handler]
    assert root.level == logging.DEBUG


def test_configure_logging_reads_environment() -> None:
    configure_logging(
        force=True, env={LOG_FORMAT_ENV: "json", LOG_LEVEL_ENV: "warning"}
    )

    root = logging.getLogger()
    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0].formatter, _JsonFormatter)
    assert root.level == logging.WARNING


def test_json_formatter_renders_structured_payload() -> None:
    formatter = _JsonFormatter()
    record = logging.LogRecord(
        name="tests.json",
        level=logging.INFO,
        pathname=__file__,
        lineno=0,
        msg="hello %s",
        args=("world",),
        exc_info=None,
    )
    record.event = "tests.json"
    record.context = {"value": object()}

    payload = json.loads(formatter.format(record))

    assert payload["message"] == "hello world"
    assert payload["event"] == "tests.json"
    assert payload["context"]["value"].startswith("<object object")
    assert payload["level"] == "INFO"


@pytest.mark.parametrize(
    ("level", "expected"),
    [
        (logging.ERROR, logging.ERROR),
        ("debug", logging.DEBUG),
        (None, logging.INFO),
    ],
)
def test_coerce_level(level: int | str | None, expected: int) -> None:
    assert _coerce_level(level) == expected


def test_coerce_level_rejects_unknown_names() -> None:
    with pytest.raises(TypeError):
        _ = _coerce_level("chatty")
