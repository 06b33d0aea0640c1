"""
Grader module for running test cases against a submission.

:class:`TestCaseRunner` executes the submission once per test case, strictly
in order, through the :class:`~codegrade.sandbox.ExecutionSandbox` and
compares the trimmed output with the trimmed expectation.  A failing case
never stops the run: its error text becomes the case's actual output and
grading continues with the next case.

Comparison is exact string equality after trimming leading and trailing
whitespace on both sides.  Differences inside the text (extra blank lines,
double spaces, ``\\r\\n``) are not normalized and will fail a case.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .executor.base import ErrorKind, ExecutionRequest, ExecutionResult
from .harness import build_call
from .language import Language
from .sandbox import ExecutionSandbox

logger = logging.getLogger(__name__)

MISSING_EXPECTATION = "[No expected output defined]"

_STATUS_BY_KIND = {
    ErrorKind.TIMEOUT: "timeout",
    ErrorKind.RUNTIME: "runtime_error",
    ErrorKind.MEMORY_LIMIT: "memory_error",
    ErrorKind.RUNTIME_BUSY: "runtime_busy",
    ErrorKind.PROVISION: "provision_error",
}


@dataclass(frozen=True)
class TestCase:
    """A single test case.  Index 0 of a question's list is the sample case."""

    __test__ = False

    input: str
    expected_output: str
    description: str = ""

    @property
    def has_expectation(self) -> bool:
        return bool(self.expected_output.strip())


@dataclass(frozen=True)
class IOConfig:
    """How test case input reaches the submission."""

    mode: str = "stdin"  # "stdin" or "function"
    entrypoint: Optional[str] = None


@dataclass(frozen=True)
class TestVerdict:
    """Outcome of one test case.  Created once per graded run, never mutated."""

    __test__ = False

    case_index: int
    passed: bool
    actual_output: str
    expected_output: str
    input_echoed: str
    description: str
    status: str
    wall_time_ms: int = 0


@dataclass(frozen=True)
class RunSummary:
    """All verdicts of one graded run, in test case order."""

    total_cases: int
    passed_cases: int
    verdicts: Tuple[TestVerdict, ...]


def outputs_match(actual: str, expected: str) -> bool:
    """Trim both sides and compare exactly.  An empty expectation never matches."""
    expected = expected.strip()
    if not expected:
        return False
    return actual.strip() == expected


def judge(index: int, case: TestCase, result: ExecutionResult) -> TestVerdict:
    """Turn one execution result into a verdict for ``case``."""
    description = case.description or f"Test case {index + 1}"
    if result.error is not None:
        actual = result.error.display()
        passed = False
        status = _STATUS_BY_KIND.get(result.error.kind, "runtime_error")
    else:
        actual = result.stdout.strip()
        passed = outputs_match(result.stdout, case.expected_output)
        status = "passed" if passed else "failed"

    if not case.has_expectation:
        logger.warning("Test case %d has no expected output defined; marking it failed", index + 1)
        passed = False
        if result.error is None:
            status = "misconfigured"

    return TestVerdict(
        case_index=index,
        passed=passed,
        actual_output=actual,
        expected_output=case.expected_output.strip() if case.has_expectation else MISSING_EXPECTATION,
        input_echoed=case.input,
        description=description,
        status=status,
        wall_time_ms=result.wall_time_ms,
    )


class TestCaseRunner:
    """Runs a submission against a question's test cases, one after another."""

    __test__ = False

    def __init__(self, sandbox: ExecutionSandbox) -> None:
        self.sandbox = sandbox

    def _request_for(
        self,
        source_code: str,
        language: Language,
        case: TestCase,
        io: Optional[IOConfig],
    ) -> ExecutionRequest:
        call = None
        if io is not None and io.mode == "function":
            call = build_call(source_code, language, case.input, io.entrypoint)
        if call is not None:
            return ExecutionRequest(language=language, source_code=source_code, call=call)
        return ExecutionRequest(language=language, source_code=source_code, stdin=case.input)

    async def run_all(
        self,
        source_code: str,
        language: Language,
        test_cases: Sequence[TestCase],
        timeout_ms: Optional[int] = None,
        io: Optional[IOConfig] = None,
        memory_limit_mb: Optional[int] = None,
    ) -> RunSummary:
        """
        Run every test case and return the summary.

        Args:
            source_code: Snapshot of the submission
            language: Language of the submission
            test_cases: Cases in question order; index 0 is the sample case
            timeout_ms: Wall-clock budget per case
            io: Input mode; stdin unless ``io.mode == "function"``
            memory_limit_mb: Per-question memory limit

        Returns:
            RunSummary with one verdict per test case, in the same order
        """
        language = Language.parse(language)
        verdicts: List[TestVerdict] = []
        for index, case in enumerate(test_cases):
            request = self._request_for(source_code, language, case, io)
            result = await self.sandbox.run(request, timeout_ms, memory_limit_mb)
            verdicts.append(judge(index, case, result))

        passed = sum(1 for verdict in verdicts if verdict.passed)
        logger.info(
            "Graded %s submission: %d/%d test cases passed", language.value, passed, len(verdicts)
        )
        return RunSummary(total_cases=len(verdicts), passed_cases=passed, verdicts=tuple(verdicts))
