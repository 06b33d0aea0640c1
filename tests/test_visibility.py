"""Tests for the hidden test case disclosure policy."""

from __future__ import annotations

from codegrade.grader import RunSummary, TestVerdict
from codegrade.visibility import (
    HiddenVerdict,
    PublicSummary,
    SampleVerdict,
    format_summary,
    publish,
)

DETAIL_KEYS = {"input", "expected", "actual"}


def verdict(index, passed, actual="out"):
    return TestVerdict(
        case_index=index,
        passed=passed,
        actual_output=actual,
        expected_output=f"expected-{index}",
        input_echoed=f"input-{index}",
        description=f"Test case {index + 1}",
        status="passed" if passed else "failed",
    )


def summary(*passed):
    verdicts = tuple(verdict(i, p) for i, p in enumerate(passed))
    return RunSummary(
        total_cases=len(verdicts),
        passed_cases=sum(1 for v in verdicts if v.passed),
        verdicts=verdicts,
    )


def test_only_the_sample_case_is_detailed():
    public = publish(summary(True, False, True))

    sample, *hidden = public.per_case
    assert isinstance(sample, SampleVerdict)
    assert sample.input == "input-0"
    assert sample.expected == "expected-0"
    assert sample.actual == "out"

    for case in hidden:
        assert isinstance(case, HiddenVerdict)
        for key in DETAIL_KEYS:
            assert not hasattr(case, key)


def test_hidden_details_are_absent_from_serialized_form():
    data = publish(summary(False, False, False)).to_dict()

    assert DETAIL_KEYS <= set(data["per_case"][0])
    for case in data["per_case"][1:]:
        assert set(case) == {"passed", "description"}
    assert "expected-1" not in repr(data)
    assert "input-2" not in repr(data)


def test_counts_are_carried_over():
    public = publish(summary(True, False, True, True))
    assert public.total_cases == 4
    assert public.passed_cases == 3
    assert [case.passed for case in public.per_case] == [True, False, True, True]


def test_publish_is_idempotent():
    raw = summary(True, False)
    assert publish(raw) == publish(raw)


def test_empty_summary():
    public = publish(summary())
    assert public == PublicSummary(total_cases=0, passed_cases=0, per_case=())
    assert format_summary(public) == "No test cases available for this question."


def test_format_all_passed():
    text = format_summary(publish(summary(True, True)))
    assert text == "Test Results: 2/2 test cases passed"


def test_format_shows_sample_failure_detail():
    text = format_summary(publish(summary(False, True)))
    assert text.startswith("Test Results: 1/2 test cases passed")
    assert "Sample test failed: Test case 1" in text
    assert "'expected-0'" in text
    assert "'out'" in text


def test_format_counts_hidden_failures_without_detail():
    text = format_summary(publish(summary(True, False, False)))
    assert "2 hidden test case(s) failed" in text
    assert "expected-1" not in text
    assert "input-2" not in text
