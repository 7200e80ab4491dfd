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

"""Public entry point: :func:`evaluate`.

The strategy is chosen once per process from :func:`~safereval.config.load_config`
and reused for every call. Each call still builds and discards its own
context.

Example::

    from safereval import evaluate

    evaluate("1 + 1")  # 2
    evaluate("point.x * 2", {"point": Point(x=5)})  # 10
    evaluate("open('/etc/passwd')")  # NameError
"""

from __future__ import annotations

from collections.abc import Mapping
from functools import cache

from .config import EvaluatorConfig, load_config
from .context import require_source
from .evaluators import Evaluator, IsolatedRealmEvaluator, LexicalShadowEvaluator
from .logging import StructuredLogger, get_logger

__all__ = ["default_evaluator", "evaluate", "select_evaluator"]

_LOGGER: StructuredLogger = get_logger(__name__, context={"component": "api"})


def select_evaluator(config: EvaluatorConfig) -> Evaluator:
    """Return the evaluator configured for this deployment."""

    evaluator: Evaluator
    if config.strategy == "lexical":
        evaluator = LexicalShadowEvaluator()
    else:
        evaluator = IsolatedRealmEvaluator()
    _LOGGER.debug(
        "Selected evaluation strategy.",
        event="evaluator.selected",
        context={"strategy": evaluator.name},
    )
    return evaluator


@cache
def default_evaluator() -> Evaluator:
    """Return the process-wide evaluator, selecting it on first use."""

    return select_evaluator(load_config())


def evaluate(code: str, context: Mapping[str, object] | None = None) -> object:
    """Evaluate ``code`` with only ``context`` and safe intrinsics visible.

    ``code`` must be a string; anything else raises
    :class:`~safereval.errors.InputTypeError` before any work is done. Keys in
    ``context`` override the denylist, so passing live host objects (the
    ``builtins`` module, ``os.environ``) hands them to the snippet.
    Compilation and runtime errors propagate unchanged.
    """

    source = require_source(code)
    return default_evaluator().evaluate(source, context)
