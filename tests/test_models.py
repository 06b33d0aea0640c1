"""Tests for question ingestion."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from codegrade.grader import IOConfig, TestCase
from codegrade.language import Language
from codegrade.models import QuestionDefinition, coerce_test_case


def test_camel_case_question():
    question = QuestionDefinition.model_validate(
        {
            "language": "js",
            "sourceTemplate": "return 1",
            "testCases": [{"input": "", "expectedOutput": "1", "description": "one"}],
            "timeLimitSeconds": 1.5,
            "memoryLimitMb": 128,
        }
    )

    assert question.language is Language.JAVASCRIPT
    assert question.source_template == "return 1"
    assert question.cases() == [TestCase(input="", expected_output="1", description="one")]
    assert question.timeout_ms() == 1500
    assert question.memory_limit_mb == 128


def test_snake_case_question():
    question = QuestionDefinition(
        language="bash",
        source_template="echo hi",
        test_cases=[{"input": "", "expected_output": "hi"}],
        io_mode="function",
        entrypoint="main",
    )
    assert question.language is Language.SHELL
    assert question.io() == IOConfig(mode="function", entrypoint="main")


def test_defaults():
    question = QuestionDefinition()
    assert question.language is Language.PYTHON
    assert question.cases() == []
    assert question.timeout_ms() is None
    assert question.io() == IOConfig()


@pytest.mark.parametrize(
    "field",
    ["expected_output", "expectedOutput", "expected", "output", "result"],
)
def test_expected_output_field_names(field):
    case = coerce_test_case(0, {"input": "1", field: "2"})
    assert case.expected_output == "2"
    assert case.has_expectation


def test_first_non_blank_expected_field_wins():
    case = coerce_test_case(0, {"expected_output": "  ", "expected": "7", "output": "8"})
    assert case.expected_output == "7"


def test_values_are_coerced_to_text():
    case = coerce_test_case(2, {"input": 5, "expected": True})
    assert case.input == "5"
    assert case.expected_output == "true"
    assert case.description == "Test case 3"


@pytest.mark.parametrize("raw", [None, "just a string", 42, ["list"]])
def test_malformed_entries_always_fail(raw):
    case = coerce_test_case(0, raw)
    assert case.expected_output == ""
    assert not case.has_expectation


def test_entry_without_expectation():
    case = coerce_test_case(0, {"input": "x"})
    assert not case.has_expectation


def test_single_test_case_object_is_accepted():
    question = QuestionDefinition.model_validate({"testCases": {"input": "1", "output": "1"}})
    assert len(question.cases()) == 1


def test_null_test_cases():
    question = QuestionDefinition.model_validate({"testCases": None})
    assert question.cases() == []


def test_unknown_language_is_rejected():
    with pytest.raises(ValidationError):
        QuestionDefinition.model_validate({"language": "cobol"})


def test_non_positive_time_limit_is_rejected():
    with pytest.raises(ValidationError):
        QuestionDefinition.model_validate({"timeLimitSeconds": 0})


def test_unknown_io_mode_is_rejected():
    with pytest.raises(ValidationError):
        QuestionDefinition.model_validate({"ioMode": "files"})
