"""Editor sessions.

An :class:`EditorSession` is the controller behind one coding question's
editor: it owns the source buffer and the language, runs the code on
request and keeps the latest output for display.  Runs take a snapshot of
the buffer, so edits made while a run is in flight do not affect it.

Only one run may be in flight per session.  A second ``run_code`` or
``run_tests`` call while one is running is rejected with
:class:`~codegrade.exceptions.SessionBusyError` rather than cancelling the
running one.

Scoring bookkeeping is delegated to an :class:`AnswerTracker`, which
receives the current source on every edit and the pass counts after each
graded run.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from .exceptions import SessionBusyError
from .executor.base import ExecutionRequest, ExecutionResult
from .grader import TestCaseRunner
from .models import QuestionDefinition
from .sandbox import ExecutionSandbox, render_plain
from .visibility import PublicSummary, format_summary, publish

logger = logging.getLogger(__name__)


class AnswerTracker:
    """Collaborator that records a candidate's answers for later scoring."""

    def record_answer(self, question_id: str, source_code: str) -> None:
        raise NotImplementedError

    def record_test_run(self, question_id: str, passed_cases: int, total_cases: int) -> None:
        raise NotImplementedError


class InMemoryAnswerTracker(AnswerTracker):
    """Keep the latest answer and test counts per question in memory."""

    def __init__(self) -> None:
        self.answers: Dict[str, str] = {}
        self.test_runs: Dict[str, List[Tuple[int, int]]] = {}

    def record_answer(self, question_id: str, source_code: str) -> None:
        self.answers[question_id] = source_code

    def record_test_run(self, question_id: str, passed_cases: int, total_cases: int) -> None:
        self.test_runs.setdefault(question_id, []).append((passed_cases, total_cases))


class EditorSession:
    """Source buffer, language and latest output of one coding question."""

    def __init__(
        self,
        question_id: str,
        question: QuestionDefinition,
        sandbox: ExecutionSandbox,
        runner: Optional[TestCaseRunner] = None,
        tracker: Optional[AnswerTracker] = None,
    ) -> None:
        self.question_id = question_id
        self.question = question
        self.language = question.language
        self.test_cases = question.cases()
        self.sandbox = sandbox
        self.runner = runner or TestCaseRunner(sandbox)
        self.tracker = tracker or InMemoryAnswerTracker()
        self.created_at = datetime.now(timezone.utc)

        self._source = question.source_template
        self._running = False
        self.last_result: Optional[ExecutionResult] = None
        self.last_summary: Optional[PublicSummary] = None
        self.output = ""

    @property
    def source(self) -> str:
        return self._source

    @property
    def busy(self) -> bool:
        return self._running

    def update_source(self, source: str) -> None:
        self._source = source
        self.tracker.record_answer(self.question_id, source)

    def _begin(self) -> str:
        if self._running:
            raise SessionBusyError(f"A run is already in progress for question {self.question_id}")
        self._running = True
        return self._source

    async def run_code(self) -> ExecutionResult:
        """Plain run: execute the buffer once without grading."""
        source = self._begin()
        try:
            request = ExecutionRequest(language=self.language, source_code=source)
            result = await self.sandbox.run(
                request, self.question.timeout_ms(), self.question.memory_limit_mb
            )
        finally:
            self._running = False
        self.last_result = result
        self.last_summary = None
        self.output = render_plain(result)
        return result

    async def run_tests(self) -> PublicSummary:
        """Graded run: execute the buffer against every test case."""
        source = self._begin()
        try:
            summary = await self.runner.run_all(
                source,
                self.language,
                self.test_cases,
                timeout_ms=self.question.timeout_ms(),
                io=self.question.io(),
                memory_limit_mb=self.question.memory_limit_mb,
            )
        finally:
            self._running = False
        public = publish(summary)
        self.last_result = None
        self.last_summary = public
        self.output = format_summary(public)
        self.tracker.record_test_run(self.question_id, public.passed_cases, public.total_cases)
        return public
