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

"""Evaluation context construction.

A context maps identifiers to the values a snippet may see. Every call builds
its own context in two steps:

1. :func:`fresh_context` starts from the denylist template, where every name
   bound in the ambient scopes (``builtins`` and ``__main__``) and every name
   in :data:`DANGEROUS_NAMES` maps to :data:`ABSENT`, while the immutable
   intrinsics in :data:`INTRINSIC_NAMES` keep their real values. Independent
   copies of ``json`` and ``math`` are layered on top.
2. :func:`merge_context` overlays the caller's bindings. The caller always
   wins, even for dangerous names.

Passing a value that references the ambient environment (the ``builtins``
module, ``os.environ``, a bound method of a live object) re-opens that
reference to the snippet. The library does not detect this.
"""

from __future__ import annotations

import builtins
import json
import keyword
import math
import sys
from collections.abc import Iterable, Mapping
from functools import cache
from types import MappingProxyType, ModuleType, SimpleNamespace
from typing import Any, Final, cast, final, override

from .errors import InputTypeError
from .logging import StructuredLogger, get_logger

__all__ = [
    "ABSENT",
    "DANGEROUS_NAMES",
    "INTRINSIC_NAMES",
    "SINGLETON_NAMES",
    "ambient_names",
    "build_denylist",
    "copy_singletons",
    "denylist_template",
    "fresh_context",
    "is_bindable",
    "merge_context",
    "prepare_context",
    "require_source",
]

_LOGGER: StructuredLogger = get_logger(__name__, context={"component": "context"})


@final
class _Absent:
    """Marker for a name that is deliberately unbound inside a snippet."""

    __slots__ = ()
    _instance: _Absent | None = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @override
    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> str:
        return "ABSENT"


ABSENT: Final = _Absent()

DANGEROUS_NAMES: Final[frozenset[str]] = frozenset(
    {
        # process and environment
        "os",
        "sys",
        "posix",
        "nt",
        "environ",
        "getenv",
        "exit",
        "quit",
        "atexit",
        "platform",
        # module loading
        "__import__",
        "__loader__",
        "__spec__",
        "__file__",
        "__path__",
        "importlib",
        "imp",
        "pkgutil",
        "runpy",
        "zipimport",
        "reload",
        # filesystem, network and child processes
        "open",
        "input",
        "print",
        "io",
        "pathlib",
        "shutil",
        "tempfile",
        "glob",
        "subprocess",
        "pty",
        "socket",
        "ssl",
        "urllib",
        "http",
        "ctypes",
        "mmap",
        "multiprocessing",
        # timers and deferred work
        "threading",
        "_thread",
        "sched",
        "asyncio",
        "signal",
        "time",
        "Timer",
        "concurrent",
        # dynamic code
        "eval",
        "exec",
        "compile",
        "code",
        "codeop",
        "breakpoint",
        "pickle",
        "marshal",
        "pdb",
        # reflection
        "globals",
        "locals",
        "vars",
        "dir",
        "getattr",
        "setattr",
        "delattr",
        "hasattr",
        "type",
        "object",
        "super",
        "memoryview",
        "classmethod",
        "staticmethod",
        "property",
        "inspect",
        "gc",
        "types",
        "weakref",
        "__build_class__",
        # the realm object itself
        "builtins",
        "__builtins__",
        "__main__",
        "__name__",
        "__doc__",
        "__package__",
    }
)
"""Names forced absent whether or not they are currently bound anywhere."""

_INTRINSIC_BASE: Final[frozenset[str]] = frozenset(
    {
        # immutable built-in types
        "bool",
        "int",
        "float",
        "complex",
        "str",
        "bytes",
        "bytearray",
        "list",
        "tuple",
        "dict",
        "set",
        "frozenset",
        "range",
        "slice",
        # pure functions
        "abs",
        "all",
        "any",
        "ascii",
        "bin",
        "callable",
        "chr",
        "divmod",
        "enumerate",
        "filter",
        "format",
        "hash",
        "hex",
        "isinstance",
        "issubclass",
        "iter",
        "len",
        "map",
        "max",
        "min",
        "next",
        "oct",
        "ord",
        "pow",
        "repr",
        "reversed",
        "round",
        "sorted",
        "sum",
        "zip",
        # constants
        "Ellipsis",
        "NotImplemented",
    }
)

_IMMUTABLE_TYPE_FLAG: Final[int] = 1 << 8


def _exception_names() -> frozenset[str]:
    # Heap types such as ExceptionGroup accept new attributes.
    return frozenset(
        name
        for name, value in vars(builtins).items()
        if isinstance(value, type)
        and issubclass(value, Exception)
        and value.__flags__ & _IMMUTABLE_TYPE_FLAG
    )


INTRINSIC_NAMES: Final[frozenset[str]] = _INTRINSIC_BASE | _exception_names()
"""Built-ins that stay bound to their real values.

They are immutable built-in types, pure functions and the statically defined
``Exception`` subclasses. Assigning attributes on any of them raises
``TypeError`` or ``AttributeError``, so sharing them with a snippet cannot
change process state.
"""

SINGLETON_NAMES: Final[frozenset[str]] = frozenset({"json", "math"})


def is_bindable(name: object) -> bool:
    """Return ``True`` when ``name`` can be bound as a local variable."""

    return (
        isinstance(name, str)
        and name.isidentifier()
        and not keyword.iskeyword(name)
        and name != "__debug__"
    )


def _default_scopes() -> tuple[ModuleType, ...]:
    main = sys.modules.get("__main__")
    if main is None or main is builtins:
        return (builtins,)
    return (builtins, main)


def ambient_names(scopes: Iterable[ModuleType] | None = None) -> frozenset[str]:
    """Return every bindable name currently bound in the ambient scopes."""

    resolved = _default_scopes() if scopes is None else tuple(scopes)
    return frozenset(
        name for scope in resolved for name in vars(scope) if is_bindable(name)
    )


def build_denylist(
    scopes: Iterable[ModuleType] | None = None,
) -> dict[str, object]:
    """Build the denylist-seeded context for ``scopes``.

    Ambient and dangerous names map to :data:`ABSENT`; intrinsics keep their
    real built-in values. The ambient scopes are only read.
    """

    denied = (ambient_names(scopes) | DANGEROUS_NAMES) - INTRINSIC_NAMES
    context: dict[str, object] = dict.fromkeys(sorted(denied), ABSENT)
    for name in sorted(INTRINSIC_NAMES):
        context[name] = getattr(builtins, name)
    return context


@cache
def denylist_template() -> Mapping[str, object]:
    """Return the process-wide, read-only denylist template."""

    return MappingProxyType(build_denylist())


def _json_copy() -> SimpleNamespace:
    decode_error = type(
        "JSONDecodeError", (json.JSONDecodeError,), {"__module__": "json"}
    )

    def dumps(obj: object, **kwargs: Any) -> str:
        return json.dumps(obj, **kwargs)

    def loads(text: str | bytes, **kwargs: Any) -> object:
        try:
            return json.loads(text, **kwargs)
        except json.JSONDecodeError as error:
            raise decode_error(error.msg, error.doc, error.pos) from None

    return SimpleNamespace(dumps=dumps, loads=loads, JSONDecodeError=decode_error)


def _math_copy() -> SimpleNamespace:
    # Built-in functions and floats reject new attributes.
    return SimpleNamespace(
        **{
            name: value
            for name, value in vars(math).items()
            if not name.startswith("_") and not isinstance(value, type)
        }
    )


def copy_singletons() -> dict[str, object]:
    """Return fresh, independent copies of the allow-listed modules.

    The copies are plain namespaces: rebinding a member on a copy changes
    neither the real module nor any other call's copy. ``json`` only keeps
    its string codecs, wrapped per call, plus a per-call ``JSONDecodeError``
    subclass that the copied ``loads`` raises. The file based
    ``dump``/``load`` and the encoder/decoder classes stay out.
    """

    return {"json": _json_copy(), "math": _math_copy()}


def fresh_context() -> dict[str, object]:
    """Return a new denylist-seeded context for a single evaluation."""

    context = dict(denylist_template())
    context.update(copy_singletons())
    return context


def require_source(code: object) -> str:
    """Return ``code`` unchanged or raise :class:`InputTypeError`."""

    if not isinstance(code, str):
        raise InputTypeError(
            f"code must be a string, not {type(code).__name__}."
        )
    return code


def merge_context(
    base: Mapping[str, object],
    caller: Mapping[str, object] | None = None,
) -> dict[str, object]:
    """Overlay ``caller`` onto ``base`` and return the new context.

    Caller values overwrite everything, including denylisted names. That is
    how a caller grants a capability; it is also how a caller can void the
    isolation, which is the caller's responsibility.
    """

    merged = dict(base)
    if caller is None:
        return merged
    if not isinstance(caller, Mapping):
        raise InputTypeError(
            f"context must be a mapping, not {type(caller).__name__}."
        )
    readmitted: list[str] = []
    for key, value in cast(Mapping[object, object], caller).items():
        if not isinstance(key, str):
            raise InputTypeError(f"context keys must be strings (got {key!r}).")
        if base.get(key, None) is ABSENT:
            readmitted.append(key)
        merged[key] = value
    if readmitted:
        _LOGGER.debug(
            "Caller context re-admits denylisted names.",
            event="context.readmitted",
            context={"names": sorted(readmitted)},
        )
    return merged


def prepare_context(
    code: object,
    caller: Mapping[str, object] | None = None,
) -> tuple[str, dict[str, object]]:
    """Validate ``code`` and return it with the merged evaluation context."""

    source = require_source(code)
    return source, merge_context(fresh_context(), caller)
