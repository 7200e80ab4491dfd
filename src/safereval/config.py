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

"""Deployment configuration for :mod:`safereval`."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final, Literal, cast, get_args

from .errors import ConfigError

__all__ = [
    "ENV_STRATEGY",
    "STRATEGIES",
    "EvaluatorConfig",
    "Strategy",
    "load_config",
]

Strategy = Literal["isolated", "lexical"]

ENV_STRATEGY: Final[str] = "SAFEREVAL_STRATEGY"
STRATEGIES: Final[tuple[str, ...]] = get_args(Strategy)


@dataclass(frozen=True, slots=True)
class EvaluatorConfig:
    """Resolved evaluator configuration.

    ``strategy`` picks the evaluation strategy for the whole deployment:
    ``isolated`` needs asteval and gives the stronger guarantee, ``lexical``
    only shadows names and is documented as partial isolation.
    """

    strategy: Strategy = "isolated"


def _coerce_strategy(value: str) -> Strategy:
    normalized = value.strip().lower()
    if normalized not in STRATEGIES:
        msg = (
            f"Unknown evaluation strategy {value!r}; "
            f"expected one of {', '.join(STRATEGIES)}."
        )
        raise ConfigError(msg)
    return cast(Strategy, normalized)


def load_config(
    *,
    env: Mapping[str, str] | None = None,
    strategy: str | None = None,
) -> EvaluatorConfig:
    """Resolve the evaluator configuration.

    An explicit ``strategy`` wins over ``SAFEREVAL_STRATEGY``, which wins over
    the ``isolated`` default. ``env`` defaults to :data:`os.environ`.
    """

    env_map = os.environ if env is None else env
    raw = strategy if strategy is not None else env_map.get(ENV_STRATEGY)
    if raw is None or not raw.strip():
        return EvaluatorConfig()
    return EvaluatorConfig(strategy=_coerce_strategy(raw))
