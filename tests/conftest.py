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

"""Shared fixtures for the safereval test suite."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from safereval import api
from safereval.config import ENV_STRATEGY, STRATEGIES, EvaluatorConfig
from safereval.evaluators import Evaluator


@pytest.fixture(autouse=True)
def reset_default_evaluator(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Forget the process-wide evaluator so each test selects its own."""

    cached = api.default_evaluator
    monkeypatch.delenv(ENV_STRATEGY, raising=False)
    cached.cache_clear()
    yield
    cached.cache_clear()


@pytest.fixture(params=STRATEGIES)
def evaluator(request: pytest.FixtureRequest) -> Evaluator:
    """Return each evaluation strategy in turn."""

    return api.select_evaluator(EvaluatorConfig(strategy=request.param))
