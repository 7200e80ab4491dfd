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

"""Command line entry point: ``safereval CODE``."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Mapping, Sequence
from typing import TextIO, cast

from .api import select_evaluator
from .config import STRATEGIES, load_config
from .errors import SaferEvalError
from .logging import LOG_LEVELS, configure_logging, get_logger

_LOGGER = get_logger(__name__, context={"component": "cli"})


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="safereval",
        description="Evaluate a Python snippet against a denylisted context.",
    )
    _ = parser.add_argument("code", help="Snippet to evaluate, or '-' for stdin.")
    _ = parser.add_argument(
        "--context",
        default=None,
        help="JSON object whose keys are bound as names inside the snippet.",
    )
    _ = parser.add_argument(
        "--strategy",
        choices=STRATEGIES,
        default=None,
        help="Evaluation strategy (defaults to $SAFEREVAL_STRATEGY or isolated).",
    )
    _ = parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Print the result as JSON instead of its repr.",
    )
    _ = parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default=None,
        help="Root log level (defaults to $SAFEREVAL_LOG_LEVEL or INFO).",
    )
    return parser


def _parse_context(raw: str | None) -> Mapping[str, object] | None:
    if raw is None:
        return None
    try:
        data: object = json.loads(raw)
    except json.JSONDecodeError as error:
        raise SaferEvalError(f"--context is not valid JSON: {error}") from error
    if not isinstance(data, dict):
        raise SaferEvalError("--context must be a JSON object.")
    return cast(dict[str, object], data)


def _render(value: object, *, json_output: bool) -> str:
    if json_output:
        return json.dumps(value, default=repr)
    return repr(value)


def main(
    argv: Sequence[str] | None = None,
    *,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
) -> int:
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    stderr = stderr or sys.stderr

    args = _build_parser().parse_args(list(argv) if argv is not None else None)
    try:
        configure_logging(level=args.log_level)
    except TypeError as error:
        print(f"safereval: {error}", file=stderr)
        return 2

    code = cast(str, args.code)
    if code == "-":
        code = stdin.read()

    try:
        context = _parse_context(args.context)
        evaluator = select_evaluator(load_config(strategy=args.strategy))
    except SaferEvalError as error:
        print(f"safereval: {error}", file=stderr)
        return 2

    try:
        value = evaluator.evaluate(code, context)
    except Exception as error:
        _LOGGER.debug(
            "Snippet raised.",
            event="cli.evaluation_failed",
            context={"error_type": type(error).__name__},
        )
        print(f"{type(error).__name__}: {error}", file=stderr)
        return 1

    print(_render(value, json_output=args.json_output), file=stdout)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
