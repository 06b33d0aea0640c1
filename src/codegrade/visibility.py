"""Result aggregation and the hidden test case policy.

:func:`publish` is the only place where raw verdicts are read.  The sample
case (index 0) is published with its input, expected and actual output; every
hidden case is published as a :class:`HiddenVerdict`, which has no detail
fields at all.  Renderers and the HTTP layer only ever see a
:class:`PublicSummary`.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Tuple, Union

from .grader import RunSummary, TestVerdict


@dataclass(frozen=True)
class SampleVerdict:
    passed: bool
    description: str
    input: str
    expected: str
    actual: str


@dataclass(frozen=True)
class HiddenVerdict:
    passed: bool
    description: str


PublicVerdict = Union[SampleVerdict, HiddenVerdict]


@dataclass(frozen=True)
class PublicSummary:
    total_cases: int
    passed_cases: int
    per_case: Tuple[PublicVerdict, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_cases": self.total_cases,
            "passed_cases": self.passed_cases,
            "per_case": [asdict(verdict) for verdict in self.per_case],
        }


def _public_verdict(verdict: TestVerdict) -> PublicVerdict:
    if verdict.case_index == 0:
        return SampleVerdict(
            passed=verdict.passed,
            description=verdict.description,
            input=verdict.input_echoed,
            expected=verdict.expected_output,
            actual=verdict.actual_output,
        )
    return HiddenVerdict(passed=verdict.passed, description=verdict.description)


def publish(summary: RunSummary) -> PublicSummary:
    """Apply the disclosure policy to ``summary``.  Pure; safe to call repeatedly."""
    return PublicSummary(
        total_cases=summary.total_cases,
        passed_cases=summary.passed_cases,
        per_case=tuple(_public_verdict(verdict) for verdict in summary.verdicts),
    )


def format_summary(public: PublicSummary) -> str:
    """Text for the output pane after a graded run."""
    if public.total_cases == 0:
        return "No test cases available for this question."

    lines: List[str] = [
        f"Test Results: {public.passed_cases}/{public.total_cases} test cases passed"
    ]
    failed_hidden = 0
    for verdict in public.per_case:
        if verdict.passed:
            continue
        if isinstance(verdict, SampleVerdict):
            lines.append("")
            lines.append(f"Sample test failed: {verdict.description}")
            lines.append(f"  Input:    {verdict.input!r}")
            lines.append(f"  Expected: {verdict.expected!r}")
            lines.append(f"  Got:      {verdict.actual!r}")
        else:
            failed_hidden += 1
    if failed_hidden:
        lines.append("")
        lines.append(f"{failed_hidden} hidden test case(s) failed")
    return "\n".join(lines)
