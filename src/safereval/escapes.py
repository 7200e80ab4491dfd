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

"""Catalog of known escape vectors.

Escapes cannot be ruled out generically, so each known technique is listed
here with the strategies that resist it. The test suite runs every vector
against every strategy: a resisted vector must raise, and an unresisted one
must still work, which keeps each documented gap visible. Bump
:data:`CATALOG_VERSION` whenever a vector is added or its expectations
change.

Categories:

``reflective-chain``
    Walking from any reachable object through dunder attributes to a host
    object (``().__class__.__base__.__subclasses__()``, a function's
    ``__globals__``).
``frame-chain``
    Reaching a caller frame, and with it host globals, through traceback or
    generator frames.
``string-program``
    Scheduling primitives that would run a program given as a string. All of
    them are denylisted.
``dynamic-code``
    ``eval``/``exec``/``compile``/``__import__`` and friends are denylisted.
    The ``import`` statement does not go through a name, so only the isolated
    realm blocks it.
``shared-state``
    Tagging or rebinding members of objects every call shares: the ``json``
    and ``math`` copies and the intrinsic types. The snippet may succeed, but
    only its own per-call copy changes.
``caller-context``
    The caller passes a live host object in the context. This is misuse, not
    a bug: no strategy resists it.
"""

from __future__ import annotations

import builtins
import json
import math
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Final, Literal

from .config import STRATEGIES

__all__ = [
    "CATALOG_VERSION",
    "ESCAPE_VECTORS",
    "EscapeVector",
    "VectorCategory",
    "known_gaps",
    "vectors_for",
]

CATALOG_VERSION: Final[int] = 4

VectorCategory = Literal[
    "reflective-chain",
    "frame-chain",
    "string-program",
    "dynamic-code",
    "shared-state",
    "caller-context",
]

_ALL: Final[frozenset[str]] = frozenset(STRATEGIES)
_ISOLATED_ONLY: Final[frozenset[str]] = frozenset({"isolated"})


def _no_context() -> Mapping[str, object]:
    return {}


class _Widget:
    """Ordinary host object handed to snippets by the reflective vectors."""

    def describe(self) -> str:
        return "widget"


def _widget_context() -> Mapping[str, object]:
    return {"widget": _Widget()}


def _builtins_context() -> Mapping[str, object]:
    return {"host": vars(builtins)}


def _environ_context() -> Mapping[str, object]:
    return {"env": os.environ}


def _is_open(value: object) -> bool:
    return value is builtins.open


def _is_environ(value: object) -> bool:
    return value is os.environ


def _is_os_module(value: object) -> bool:
    return value is os


def _is_host_globals(value: object) -> bool:
    return isinstance(value, dict) and "__builtins__" in value


def _lists_object_subclasses(value: object) -> bool:
    return isinstance(value, list) and int in value


_TAMPER_ATTR: Final[str] = "tampered_by_snippet"


def _json_tampered(_value: object) -> bool:
    return any(
        hasattr(member, _TAMPER_ATTR)
        for member in (json.dumps, json.loads, json.JSONDecodeError)
    )


def _math_tampered(_value: object) -> bool:
    return math.pi == 3


def _exception_group_tampered(_value: object) -> bool:
    return hasattr(ExceptionGroup, _TAMPER_ATTR)


@dataclass(frozen=True, slots=True)
class EscapeVector:
    """One catalogued escape technique.

    ``snippet`` is run with the context built by ``context_factory``. When
    the strategy is not in ``resisted_by``, ``leaks`` must accept the value
    the snippet returned, proving the host reference was reached. A resisted
    vector raises unless ``raises`` is false; either way ``leaks`` must
    reject what it produced.
    """

    name: str
    category: VectorCategory
    description: str
    snippet: str
    resisted_by: frozenset[str]
    raises: bool = True
    leaks: Callable[[object], bool] = field(default=_is_open)
    context_factory: Callable[[], Mapping[str, object]] = field(
        default=_no_context
    )

    def resisted(self, strategy: str) -> bool:
        return strategy in self.resisted_by


ESCAPE_VECTORS: Final[tuple[EscapeVector, ...]] = (
    EscapeVector(
        name="literal-subclass-walk",
        category="reflective-chain",
        description=(
            "Climb from a tuple literal to object and enumerate every loaded "
            "class, which includes classes whose methods hold host globals."
        ),
        snippet="().__class__.__base__.__subclasses__()",
        resisted_by=_ISOLATED_ONLY,
        leaks=_lists_object_subclasses,
    ),
    EscapeVector(
        name="context-object-method-globals",
        category="reflective-chain",
        description=(
            "Follow a method of an object reachable through the context to "
            "the globals of the module that defined it."
        ),
        snippet="widget.describe.__func__.__globals__['__builtins__']['open']",
        resisted_by=_ISOLATED_ONLY,
        context_factory=_widget_context,
    ),
    EscapeVector(
        name="snippet-function-globals",
        category="reflective-chain",
        description=(
            "Define a function inside the snippet and read the builtins of "
            "the namespace it was compiled in."
        ),
        snippet=(
            "def helper():\n"
            "    return None\n"
            "helper.__globals__['__builtins__'].open"
        ),
        resisted_by=_ISOLATED_ONLY,
    ),
    EscapeVector(
        name="traceback-caller-frame",
        category="frame-chain",
        description=(
            "Catch an exception and walk its traceback to the frame that "
            "called the snippet, exposing that frame's globals."
        ),
        snippet=(
            "try:\n"
            "    1 / 0\n"
            "except ZeroDivisionError as error:\n"
            "    frame = error.__traceback__.tb_frame\n"
            "frame.f_back.f_globals"
        ),
        resisted_by=_ISOLATED_ONLY,
        leaks=_is_host_globals,
    ),
    EscapeVector(
        name="timer-string-program",
        category="string-program",
        description="Schedule a string program on a host timer thread.",
        snippet="threading.Timer(0, 'open')",
        resisted_by=_ALL,
    ),
    EscapeVector(
        name="event-loop-call-later",
        category="string-program",
        description="Defer work onto an event loop owned by the host.",
        snippet="asyncio.get_event_loop().call_later(0, print)",
        resisted_by=_ALL,
    ),
    EscapeVector(
        name="eval-builtin",
        category="dynamic-code",
        description="Compile and run a new program with the host eval.",
        snippet="eval('9 + 25')",
        resisted_by=_ALL,
    ),
    EscapeVector(
        name="compile-builtin",
        category="dynamic-code",
        description="Build a code object for later execution.",
        snippet="compile('open', '<s>', 'eval')",
        resisted_by=_ALL,
    ),
    EscapeVector(
        name="import-hook",
        category="dynamic-code",
        description="Load the os module through the import hook.",
        snippet="__import__('os').getpid()",
        resisted_by=_ALL,
    ),
    EscapeVector(
        name="import-statement",
        category="dynamic-code",
        description=(
            "Load a module with an import statement, which resolves the import "
            "hook from the host builtins rather than from any shadowed name."
        ),
        snippet="import os\nos",
        resisted_by=_ISOLATED_ONLY,
        leaks=_is_os_module,
    ),
    EscapeVector(
        name="singleton-member-tagging",
        category="shared-state",
        description=(
            "Set an attribute on every member of the json copy, hoping the "
            "members are the real module's functions and classes."
        ),
        snippet=(
            f"json.dumps.{_TAMPER_ATTR} = True\n"
            f"json.loads.{_TAMPER_ATTR} = True\n"
            f"json.JSONDecodeError.{_TAMPER_ATTR} = True"
        ),
        resisted_by=_ALL,
        raises=False,
        leaks=_json_tampered,
    ),
    EscapeVector(
        name="singleton-member-rebinding",
        category="shared-state",
        description="Rebind a constant on the math copy.",
        snippet="math.pi = 3\nmath.pi",
        resisted_by=_ALL,
        raises=False,
        leaks=_math_tampered,
    ),
    EscapeVector(
        name="mutable-exception-type",
        category="shared-state",
        description=(
            "Tag a built-in exception type that is a heap type and so "
            "accepts new attributes."
        ),
        snippet=f"ExceptionGroup.{_TAMPER_ATTR} = True",
        resisted_by=_ALL,
        leaks=_exception_group_tampered,
    ),
    EscapeVector(
        name="builtins-namespace-in-context",
        category="caller-context",
        description=(
            "The caller passes the builtins namespace itself; every "
            "denylisted builtin becomes reachable through it."
        ),
        snippet="host['open']",
        resisted_by=frozenset(),
        context_factory=_builtins_context,
    ),
    EscapeVector(
        name="environment-map-in-context",
        category="caller-context",
        description=(
            "The caller passes the live environment map; the snippet can read "
            "and write process environment variables."
        ),
        snippet="env",
        resisted_by=frozenset(),
        leaks=_is_environ,
        context_factory=_environ_context,
    ),
)


def vectors_for(strategy: str) -> tuple[EscapeVector, ...]:
    """Return the vectors ``strategy`` is expected to resist."""

    return tuple(vector for vector in ESCAPE_VECTORS if vector.resisted(strategy))


def known_gaps(strategy: str) -> tuple[EscapeVector, ...]:
    """Return the vectors ``strategy`` is documented not to resist."""

    return tuple(
        vector for vector in ESCAPE_VECTORS if not vector.resisted(strategy)
    )
