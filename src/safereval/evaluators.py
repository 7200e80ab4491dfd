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

"""Evaluation strategies.

Two strategies share the :class:`Evaluator` protocol and differ in how much
of the host interpreter a snippet can reach:

:class:`IsolatedRealmEvaluator`
    Runs the snippet inside a fresh ``asteval`` interpreter whose symbol table
    is exactly the merged context. The snippet never sees the host's
    ``builtins`` and cannot read dunder or frame attributes, so type-chain and
    frame-chain walks fail with ``AttributeError``.

:class:`LexicalShadowEvaluator`
    Compiles the snippet into a host function whose locals shadow every
    context name, then calls it. This needs nothing beyond the standard
    library, but the function still lives in the host interpreter: anything
    that reaches the host without naming a shadowed identifier (``__class__``
    walks, ``__globals__``, traceback frames) is **not** blocked. See
    :mod:`safereval.escapes` for the catalogued gaps.

Both strategies are synchronous and let compilation and runtime errors
propagate unchanged.
"""

from __future__ import annotations

import ast
import builtins
from collections.abc import Callable, Mapping, MutableMapping
from importlib import import_module
from types import ModuleType
from typing import ClassVar, Final, NoReturn, Protocol, cast, runtime_checkable

from .context import ABSENT, is_bindable, prepare_context
from .logging import StructuredLogger, get_logger

__all__ = [
    "Evaluator",
    "InterpreterProtocol",
    "IsolatedRealmEvaluator",
    "LexicalShadowEvaluator",
    "load_asteval_module",
    "synthesize_wrapper",
]

_LOGGER: StructuredLogger = get_logger(
    __name__, context={"component": "evaluators"}
)

SNIPPET_FILENAME: Final[str] = "<snippet>"
_MISSING_DEPENDENCY_MESSAGE: Final[str] = (
    "Install the asteval package to use the isolated realm evaluator."
)
_DISABLED_NODE_HANDLERS: Final[tuple[str, ...]] = ("import", "importfrom")
_RAISE_NODE_HANDLER: Final[str] = "raise"
_ENTRY_POINT: Final[str] = "__safereval_entry__"
_CONTEXT_PARAM: Final[str] = "__safereval_context__"


@runtime_checkable
class Evaluator(Protocol):
    """Compile and run a snippet against a denylisted context."""

    name: ClassVar[str]

    def evaluate(
        self, code: str, context: Mapping[str, object] | None = None
    ) -> object:
        """Return the value of ``code`` or raise the error it produced."""
        ...


# -----------------------------------------------------------------------------
# Isolated realm (asteval)
# -----------------------------------------------------------------------------


def load_asteval_module() -> ModuleType:
    try:
        return import_module("asteval")
    except ModuleNotFoundError as error:
        raise RuntimeError(_MISSING_DEPENDENCY_MESSAGE) from error


class InterpreterProtocol(Protocol):
    symtable: MutableMapping[str, object]
    node_handlers: MutableMapping[str, object] | None
    error: list[object]

    def eval(self, expr: str, *, show_errors: bool = ...) -> object: ...

    def run(self, node: ast.AST) -> object: ...

    def raise_exception(
        self,
        node: ast.AST | None,
        exc: type[BaseException] | None = ...,
        msg: str = ...,
    ) -> NoReturn: ...


def _native_raise_handler(
    interpreter: InterpreterProtocol,
) -> Callable[[ast.Raise], None]:
    """Return a ``raise`` handler that raises the snippet's own exception.

    asteval's default handler rebuilds the exception from its class and a
    joined message. This one raises the evaluated value itself and records it
    while it is being handled, so the recorded holder keeps the instance.
    """

    def on_raise(node: ast.Raise) -> None:
        exc = None if node.exc is None else interpreter.run(node.exc)
        cause = None if node.cause is None else interpreter.run(node.cause)
        try:
            if node.exc is None:
                raise RuntimeError("No active exception to reraise")
            if node.cause is None:
                raise cast(BaseException, exc)
            raise cast(BaseException, exc) from cast(BaseException, cause)
        except Exception as error:
            interpreter.raise_exception(node, exc=type(error), msg=str(error))

    return on_raise


def _create_interpreter(bindings: Mapping[str, object]) -> InterpreterProtocol:
    module = load_asteval_module()
    interpreter_cls = getattr(module, "Interpreter", None)
    if not callable(interpreter_cls):
        raise TypeError(_MISSING_DEPENDENCY_MESSAGE)

    interpreter = cast(InterpreterProtocol, interpreter_cls(use_numpy=False))
    # asteval seeds its own builtins and a print hook; drop all of them.
    interpreter.symtable = dict(bindings)
    node_handlers = getattr(interpreter, "node_handlers", None)
    if isinstance(node_handlers, MutableMapping):
        handlers = cast(MutableMapping[str, object], node_handlers)
        for key in _DISABLED_NODE_HANDLERS:
            _ = handlers.pop(key, None)
        handlers[_RAISE_NODE_HANDLER] = _native_raise_handler(interpreter)
    return interpreter


def _raise_recorded_error(holder: object) -> NoReturn:
    """Re-raise the first error asteval recorded during evaluation.

    asteval records errors instead of raising them. When the holder kept the
    original exception instance it is raised as-is; otherwise a new instance
    of the recorded type carries asteval's message.
    """

    exc_type = getattr(holder, "exc", None)
    if not (isinstance(exc_type, type) and issubclass(exc_type, BaseException)):
        exc_type = RuntimeError
    exc_info = getattr(holder, "exc_info", None)
    original = exc_info[1] if isinstance(exc_info, tuple) and exc_info else None
    if isinstance(original, exc_type):
        raise original
    message = getattr(holder, "msg", "")
    raise exc_type(str(message))


class IsolatedRealmEvaluator:
    """Evaluate snippets in a fresh asteval interpreter per call.

    The interpreter's symbol table holds exactly the non-absent context
    entries, so an absent name raises ``NameError`` and nothing from the host
    ``builtins`` leaks in. ``import`` statements are disabled. Statement
    sequences return the value of their final expression statement.
    """

    name: ClassVar[str] = "isolated"

    def evaluate(
        self, code: str, context: Mapping[str, object] | None = None
    ) -> object:
        source, merged = prepare_context(code, context)
        _LOGGER.debug(
            "Evaluating snippet.",
            event="evaluation.start",
            context={"strategy": self.name, "code_length": len(source)},
        )
        bindings = {
            key: value for key, value in merged.items() if value is not ABSENT
        }
        interpreter = _create_interpreter(bindings)
        interpreter.error = []
        result = interpreter.eval(source, show_errors=False)
        if interpreter.error:
            _raise_recorded_error(interpreter.error[0])
        return result


# -----------------------------------------------------------------------------
# Lexical shadowing (host compile)
# -----------------------------------------------------------------------------


class _EntryPoint(Protocol):
    def __call__(self, context: Mapping[str, object], /) -> object: ...


def _render_prelude(context: Mapping[str, object]) -> str:
    lines: list[str] = []
    for key, value in context.items():
        if not is_bindable(key) or key == _CONTEXT_PARAM:
            continue
        if value is ABSENT:
            # Assigned then deleted: a local with no value raises on read.
            lines.append(f"{key} = None")
            lines.append(f"del {key}")
        else:
            lines.append(f"{key} = {_CONTEXT_PARAM}[{key!r}]")
    return "\n".join(lines)


def synthesize_wrapper(code: str, context: Mapping[str, object]) -> ast.Module:
    """Return a module defining the shadowing entry point for ``code``.

    The entry point takes the context mapping as its single argument, binds
    one local per bindable key, then runs the snippet. A trailing expression
    statement becomes the return value.
    """

    snippet = ast.parse(code, filename=SNIPPET_FILENAME, mode="exec")
    # Rejects top-level return, yield and await before they move into a body.
    _ = compile(snippet, SNIPPET_FILENAME, "exec", flags=0, dont_inherit=True)
    module = ast.parse(f"def {_ENTRY_POINT}({_CONTEXT_PARAM}):\n    pass\n")
    function = cast(ast.FunctionDef, module.body[0])
    prelude = ast.parse(_render_prelude(context)).body

    body = list(snippet.body)
    if body and isinstance(body[-1], ast.Expr):
        last = cast(ast.Expr, body[-1])
        body[-1] = ast.copy_location(ast.Return(value=last.value), last)
    function.body = [*prelude, *body, ast.Return(value=None)]
    return ast.fix_missing_locations(module)


class LexicalShadowEvaluator:
    """Evaluate snippets as host functions whose locals shadow the context.

    Only bindable keys are shadowed. The compiled function runs against the
    real ``builtins`` module, so this strategy offers partial isolation only.
    Values returned from it, callables in particular, keep closing over this
    call's context.
    """

    name: ClassVar[str] = "lexical"

    def evaluate(
        self, code: str, context: Mapping[str, object] | None = None
    ) -> object:
        source, merged = prepare_context(code, context)
        _LOGGER.debug(
            "Evaluating snippet.",
            event="evaluation.start",
            context={"strategy": self.name, "code_length": len(source)},
        )
        wrapper = synthesize_wrapper(source, merged)
        compiled = compile(
            wrapper, SNIPPET_FILENAME, "exec", flags=0, dont_inherit=True
        )
        namespace: dict[str, object] = {
            "__builtins__": builtins,
            "__name__": SNIPPET_FILENAME,
        }
        exec(compiled, namespace)  # nosec B102 - the snippet only runs via the entry point
        entry = namespace[_ENTRY_POINT]
        return cast(_EntryPoint, entry)(merged)
