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

"""Base exception hierarchy for :mod:`safereval`.

Only failures that belong to the library itself live here. Errors raised
while a snippet is compiled or executed (``SyntaxError``, ``NameError``,
``ZeroDivisionError`` or whatever the snippet raises) are the evaluation
errors of the call: they propagate to the caller as the native exception and
are never wrapped, retried or logged.
"""

from __future__ import annotations


class SaferEvalError(Exception):
    """Base class for all safereval exceptions.

    Catching this class separates misuse of the library from failures of the
    evaluated snippet, which surface as ordinary Python exceptions.

    Example:
        Distinguish bad input from a failing snippet::

            try:
                value = evaluate(source, context)
            except SaferEvalError:
                raise  # the call itself was malformed
            except Exception as error:
                report_snippet_failure(error)
    """


class InputTypeError(SaferEvalError, TypeError):
    """Raised when ``evaluate`` receives arguments of the wrong type.

    The check runs before any evaluation context is constructed. Common
    causes:

    - ``code`` is not a ``str`` (bytes, numbers, callables)
    - the caller context is not a mapping
    - a caller context key is not a ``str``

    Note:
        This exception also inherits from ``TypeError`` so generic handlers
        keep working.
    """


class ConfigError(SaferEvalError, ValueError):
    """Raised when the evaluator configuration is invalid.

    The most common cause is an unknown strategy name in
    ``SAFEREVAL_STRATEGY`` or on the command line.
    """


__all__ = [
    "ConfigError",
    "InputTypeError",
    "SaferEvalError",
]
