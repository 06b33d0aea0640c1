"""Tests for function-mode argument parsing and entrypoint detection."""

from __future__ import annotations

import pytest

from codegrade.harness import (
    FunctionInfo,
    build_call,
    convert_argument,
    extract_functions,
    parse_arguments,
    split_arguments,
)
from codegrade.language import Language


class TestExtractFunctions:
    def test_python_module_level_functions(self):
        source = (
            "def helper(x):\n"
            "    def inner(y):\n"
            "        return y\n"
            "    return inner(x)\n"
            "\n"
            "class Solver:\n"
            "    def solve(self, a, b):\n"
            "        return a\n"
            "\n"
            "def solve(nums, target=0):\n"
            "    return helper(nums)\n"
        )
        assert extract_functions(source, Language.PYTHON) == [
            FunctionInfo("helper", 1),
            FunctionInfo("solve", 2),
        ]

    def test_javascript_declarations_and_arrows(self):
        source = (
            "const double = (x) => x * 2;\n"
            "function add(a, b) { return a + b; }\n"
            "let square = n => n * n;\n"
        )
        assert extract_functions(source, Language.JAVASCRIPT) == [
            FunctionInfo("double", 1),
            FunctionInfo("add", 2),
            FunctionInfo("square", 1),
        ]

    def test_shell_functions(self):
        source = "greet() {\n  echo hi $1\n}\nfunction shout {\n  echo HI\n}\n"
        names = [f.name for f in extract_functions(source, Language.SHELL)]
        assert names == ["greet", "shout"]

    def test_no_functions(self):
        assert extract_functions("print(1)", Language.PYTHON) == []


class TestParseArguments:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("", []),
            ("[1, 2, 3]", ["1", "2", "3"]),
            ("5", ["5"]),
            ('"hello"', ['"hello"']),
            ("[1, 2", ["[1, 2"]),
            ("solve(1, 'a,b')", ["1", "'a,b'"]),
            ("solve()", []),
            ("[1, 2], 3", ["[1, 2]", "3"]),
            ("{'a': 1}", ["{'a': 1}"]),
            ("hello world", ["hello world"]),
        ],
    )
    def test_forms(self, raw, expected):
        assert parse_arguments(raw) == expected

    def test_json_array_of_arrays(self):
        assert parse_arguments("[[1, 2], [3]]") == ["[1, 2]", "[3]"]

    def test_split_respects_nesting_and_quotes(self):
        assert split_arguments("(1, 2), {'k': [3, 4]}, 'x, y'") == [
            "(1, 2)",
            "{'k': [3, 4]}",
            "'x, y'",
        ]


class TestConvertArgument:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("42", 42),
            ("3.5", 3.5),
            ('"text"', "text"),
            ("'text'", "text"),
            ("True", True),
            ("false", False),
            ("None", None),
            ("null", None),
            ("(1, 2)", [1, 2]),
            ("[1, [2, 3]]", [1, [2, 3]]),
            ("plain words", "plain words"),
        ],
    )
    def test_values(self, raw, expected):
        assert convert_argument(raw) == expected


class TestBuildCall:
    def test_uses_first_function(self):
        call = build_call("def add(a, b):\n    return a + b\n", Language.PYTHON, "1, 2")
        assert call.name == "add"
        assert call.args == (1, 2)

    def test_folds_args_for_single_parameter(self):
        call = build_call("def total(nums):\n    return sum(nums)\n", Language.PYTHON, "1, 2, 3")
        assert call.args == ([1, 2, 3],)

    def test_configured_entrypoint(self):
        source = "def helper(x):\n    return x\n\ndef main(a, b):\n    return a * b\n"
        call = build_call(source, Language.PYTHON, "[2, 3]", entrypoint="main")
        assert call.name == "main"
        assert call.args == (2, 3)

    def test_no_function_falls_back_to_stdin(self):
        assert build_call("print(input())", Language.PYTHON, "5") is None

    def test_invalid_entrypoint_is_ignored(self):
        assert build_call("def f():\n    pass\n", Language.PYTHON, "", entrypoint="f; rm -rf /") is None
