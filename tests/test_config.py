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

"""Tests for strategy configuration and the public entry point."""

from __future__ import annotations

import pytest

import safereval
from safereval import api
from safereval.config import ENV_STRATEGY, EvaluatorConfig, load_config
from safereval.errors import ConfigError, InputTypeError
from safereval.evaluators import (
    Evaluator,
    IsolatedRealmEvaluator,
    LexicalShadowEvaluator,
)


def test_default_strategy_is_isolated() -> None:
    assert load_config(env={}) == EvaluatorConfig(strategy="isolated")


def test_environment_selects_strategy() -> None:
    config = load_config(env={ENV_STRATEGY: " Lexical "})

    assert config.strategy == "lexical"


def test_explicit_strategy_wins_over_environment() -> None:
    config = load_config(env={ENV_STRATEGY: "lexical"}, strategy="isolated")

    assert config.strategy == "isolated"


def test_blank_environment_value_uses_default() -> None:
    assert load_config(env={ENV_STRATEGY: "  "}).strategy == "isolated"


def test_unknown_strategy_is_rejected() -> None:
    with pytest.raises(ConfigError) as captured:
        _ = load_config(env={ENV_STRATEGY: "realm"})

    assert "isolated, lexical" in str(captured.value)
    assert isinstance(captured.value, ValueError)


def test_config_is_frozen() -> None:
    config = EvaluatorConfig()

    with pytest.raises(AttributeError):
        config.strategy = "lexical"  # type: ignore[misc]


@pytest.mark.parametrize(
    ("strategy", "expected"),
    [("isolated", IsolatedRealmEvaluator), ("lexical", LexicalShadowEvaluator)],
)
def test_select_evaluator(strategy: str, expected: type[Evaluator]) -> None:
    evaluator = api.select_evaluator(EvaluatorConfig(strategy=strategy))  # type: ignore[arg-type]

    assert isinstance(evaluator, expected)
    assert isinstance(evaluator, Evaluator)
    assert evaluator.name == strategy


def test_default_evaluator_is_selected_once(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(ENV_STRATEGY, "lexical")

    first = api.default_evaluator()
    monkeypatch.setenv(ENV_STRATEGY, "isolated")

    assert api.default_evaluator() is first
    assert isinstance(first, LexicalShadowEvaluator)


@pytest.mark.parametrize("strategy", ["isolated", "lexical"])
def test_evaluate_uses_configured_strategy(
    monkeypatch: pytest.MonkeyPatch, strategy: str
) -> None:
    monkeypatch.setenv(ENV_STRATEGY, strategy)

    assert safereval.evaluate("1 + 1") == 2
    assert safereval.evaluate("ctxObj['x']", {"ctxObj": {"x": 5}}) == 5
    assert api.default_evaluator().name == strategy


def test_evaluate_rejects_non_strings_before_selecting(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def fail() -> Evaluator:
        raise AssertionError("evaluator must not be selected for invalid input")

    monkeypatch.setattr(api, "default_evaluator", fail)

    with pytest.raises(InputTypeError):
        _ = safereval.evaluate(42)  # type: ignore[arg-type]
