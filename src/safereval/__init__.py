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

"""Evaluate small Python snippets against a denylisted context.

This is a best-effort denylist with two isolation strategies, not a general
sandbox and not a resource limiter. Run untrusted snippets on a worker with a
deadline when runaway loops matter.
"""

from __future__ import annotations

from .api import default_evaluator, evaluate, select_evaluator
from .config import EvaluatorConfig, load_config
from .context import ABSENT, fresh_context, merge_context
from .errors import ConfigError, InputTypeError, SaferEvalError
from .evaluators import Evaluator, IsolatedRealmEvaluator, LexicalShadowEvaluator

__all__ = [
    "ABSENT",
    "ConfigError",
    "Evaluator",
    "EvaluatorConfig",
    "InputTypeError",
    "IsolatedRealmEvaluator",
    "LexicalShadowEvaluator",
    "SaferEvalError",
    "default_evaluator",
    "evaluate",
    "fresh_context",
    "load_config",
    "merge_context",
    "select_evaluator",
]
