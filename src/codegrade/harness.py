"""Function-mode helpers for graded runs.

Coding questions written as "implement ``solve(nums)``" give each test case's
input as an argument list rather than as standard input.  This module finds
the functions a submission defines and turns the loosely formatted input of
a test case into positional arguments:

* a JSON array is a list of arguments, any other JSON value one argument;
* a bracketed, braced or quoted literal is a single argument;
* ``name(a, b)`` call syntax yields the arguments inside the parentheses;
* otherwise a comma separated list is split at top-level commas.

Each argument is converted with :func:`convert_argument` to a JSON
compatible value so it can be handed to any of the language harnesses.
"""

from __future__ import annotations

import ast
import json
import re
from dataclasses import dataclass
from typing import Any, List, Optional

from .executor.base import FunctionCall
from .language import Language

_PYTHON_DEF = re.compile(r"^(?:async[ \t]+)?def[ \t]+([A-Za-z_]\w*)[ \t]*\(([^)]*)\)", re.M)
_JS_FUNCTION = re.compile(r"\bfunction[ \t]+([A-Za-z_$][\w$]*)[ \t]*\(([^)]*)\)")
_JS_ARROW = re.compile(
    r"\b(?:const|let|var)[ \t]+([A-Za-z_$][\w$]*)[ \t]*=[ \t]*(?:async[ \t]*)?"
    r"(?:\(([^)]*)\)|([A-Za-z_$][\w$]*))[ \t]*=>"
)
_SHELL_FUNCTION = re.compile(
    r"^[ \t]*(?:function[ \t]+([A-Za-z_]\w*)[ \t]*(?:\(\))?|([A-Za-z_]\w*)[ \t]*\(\))[ \t]*\{", re.M
)
_CALL_SYNTAX = re.compile(r"^(\w+)\s*\((.*)\)\s*$", re.S)
_IDENTIFIER = re.compile(r"^[A-Za-z_$][\w$]*$")


@dataclass(frozen=True)
class FunctionInfo:
    """A function definition found in a submission.

    ``param_count`` is ``-1`` when the language does not declare parameters
    (shell functions).
    """

    name: str
    param_count: int


def _count_params(params: str) -> int:
    names = [p.strip() for p in split_arguments(params)]
    names = [p for p in names if p and p not in {"self", "cls", "*", "/"}]
    return len(names)


def extract_functions(source: str, language: Language) -> List[FunctionInfo]:
    """Return the functions defined in ``source`` in order of appearance."""
    found: List[tuple] = []
    if language is Language.PYTHON:
        # Only module level definitions; methods and nested functions are not entrypoints.
        for match in _PYTHON_DEF.finditer(source):
            found.append((match.start(), match.group(1), _count_params(match.group(2))))
    elif language is Language.JAVASCRIPT:
        for match in _JS_FUNCTION.finditer(source):
            found.append((match.start(), match.group(1), _count_params(match.group(2))))
        for match in _JS_ARROW.finditer(source):
            params = match.group(2) if match.group(2) is not None else match.group(3)
            found.append((match.start(), match.group(1), _count_params(params)))
    elif language is Language.SHELL:
        for match in _SHELL_FUNCTION.finditer(source):
            found.append((match.start(), match.group(1) or match.group(2), -1))
    found.sort(key=lambda item: item[0])
    return [FunctionInfo(name=name, param_count=count) for _, name, count in found]


def split_arguments(text: str) -> List[str]:
    """Split ``text`` at commas that are outside brackets, braces, parentheses and quotes."""
    args: List[str] = []
    current = []
    quote = ""
    depth = 0
    previous = ""
    for char in text:
        if quote:
            current.append(char)
            if char == quote and previous != "\\":
                quote = ""
        elif char in "\"'":
            quote = char
            current.append(char)
        elif char in "([{":
            depth += 1
            current.append(char)
        elif char in ")]}":
            depth -= 1
            current.append(char)
        elif char == "," and depth == 0:
            args.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        previous = char
    tail = "".join(current).strip()
    if tail:
        args.append(tail)
    return args


def parse_arguments(raw: str) -> List[str]:
    """Split a test case input into argument source strings."""
    text = raw.strip()
    if not text:
        return []

    try:
        parsed = json.loads(text)
    except ValueError:
        pass
    else:
        if isinstance(parsed, list):
            return [json.dumps(item) for item in parsed]
        return [text]

    if re.match(r"^\[.*\]$", text, re.S) or re.match(r"^\{.*\}$", text, re.S):
        return [text]
    if re.match(r"^[\"'].*[\"']$", text, re.S) and len(split_arguments(text)) == 1:
        return [text]

    call = _CALL_SYNTAX.match(text)
    if call:
        inner = call.group(2).strip()
        return split_arguments(inner) if inner else []

    if "," in text:
        return split_arguments(text)
    return [text]


def _jsonable(value: Any) -> Any:
    if isinstance(value, (tuple, set, frozenset)):
        return [_jsonable(item) for item in value]
    if isinstance(value, list):
        return [_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, complex):
        return str(value)
    return value


def convert_argument(arg: str) -> Any:
    """Convert one argument source string into a JSON compatible value."""
    text = arg.strip()
    try:
        return json.loads(text)
    except ValueError:
        pass
    lowered = text.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    if lowered in {"none", "null", "undefined"}:
        return None
    try:
        return _jsonable(ast.literal_eval(text))
    except (ValueError, SyntaxError, TypeError, MemoryError, RecursionError):
        return text


def build_call(
    source: str,
    language: Language,
    raw_input: str,
    entrypoint: Optional[str] = None,
) -> Optional[FunctionCall]:
    """Build the entrypoint call for a test case, or ``None`` to fall back to stdin.

    The entrypoint is ``entrypoint`` when given, otherwise the first function
    defined in ``source``.  A single-parameter function given several
    arguments receives them folded into one list.
    """
    functions = extract_functions(source, language)
    if entrypoint:
        if not _IDENTIFIER.match(entrypoint):
            return None
        info = next((f for f in functions if f.name == entrypoint), FunctionInfo(entrypoint, -1))
    elif functions:
        info = functions[0]
    else:
        return None

    args = [convert_argument(arg) for arg in parse_arguments(raw_input)]
    if info.param_count == 1 and len(args) > 1:
        args = [args]
    return FunctionCall(name=info.name, args=tuple(args))
