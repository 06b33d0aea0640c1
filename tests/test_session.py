"""
Tests for editor sessions.

The sandbox is replaced by small fakes so the tests can hold a run open and
observe exactly which source snapshot was executed.
"""

from __future__ import annotations

import asyncio

import pytest

from codegrade.exceptions import SessionBusyError
from codegrade.executor.base import ErrorKind, ExecutionResult
from codegrade.models import QuestionDefinition
from codegrade.sandbox import NO_OUTPUT_NOTICE
from codegrade.session import EditorSession, InMemoryAnswerTracker


def make_question(**overrides):
    data = {
        "language": "python",
        "sourceTemplate": "print(input())",
        "testCases": [
            {"input": "a", "expectedOutput": "a"},
            {"input": "b", "expectedOutput": "b"},
            {"input": "c", "expectedOutput": "secret"},
        ],
    }
    data.update(overrides)
    return QuestionDefinition.model_validate(data)


class EchoSandbox:
    """Echoes stdin back; optionally blocks until released."""

    def __init__(self, gate=None):
        self.gate = gate
        self.sources = []
        self.timeouts = []

    async def run(self, request, timeout_ms=None, memory_limit_mb=None):
        self.sources.append(request.source_code)
        self.timeouts.append(timeout_ms)
        if self.gate is not None:
            await self.gate.wait()
        return ExecutionResult(stdout=request.stdin + "\n" if request.stdin else "")


def test_initial_source_is_the_template():
    session = EditorSession("q1", make_question(), EchoSandbox())
    assert session.source == "print(input())"
    assert session.busy is False
    assert session.output == ""


def test_source_updates_are_forwarded_to_tracker():
    tracker = InMemoryAnswerTracker()
    session = EditorSession("q1", make_question(), EchoSandbox(), tracker=tracker)

    session.update_source("print('x')")

    assert session.source == "print('x')"
    assert tracker.answers == {"q1": "print('x')"}


def test_graded_run_publishes_and_records_counts():
    tracker = InMemoryAnswerTracker()
    session = EditorSession("q1", make_question(), EchoSandbox(), tracker=tracker)

    public = asyncio.run(session.run_tests())

    assert public.total_cases == 3
    assert public.passed_cases == 2
    assert tracker.test_runs == {"q1": [(2, 3)]}
    assert session.last_summary is public
    assert session.output.startswith("Test Results: 2/3 test cases passed")
    assert "1 hidden test case(s) failed" in session.output
    assert "secret" not in session.output


def test_plain_run_output_pane():
    session = EditorSession("q1", make_question(), EchoSandbox())
    session.update_source("pass")

    result = asyncio.run(session.run_code())

    assert result.stdout == ""
    assert session.output == NO_OUTPUT_NOTICE
    assert session.last_result is result


def test_plain_run_error_is_shown():
    class FailingSandbox:
        async def run(self, request, timeout_ms=None, memory_limit_mb=None):
            return ExecutionResult.failure(ErrorKind.RUNTIME, "NameError: name 'x' is not defined")

    session = EditorSession("q1", make_question(), FailingSandbox())
    asyncio.run(session.run_code())
    assert session.output == "RuntimeError: NameError: name 'x' is not defined"


def test_question_time_limit_is_used():
    sandbox = EchoSandbox()
    session = EditorSession("q1", make_question(timeLimitSeconds=2), sandbox)
    asyncio.run(session.run_code())
    assert sandbox.timeouts == [2000]


def test_second_run_while_busy_is_rejected():
    async def scenario():
        gate = asyncio.Event()
        sandbox = EchoSandbox(gate)
        session = EditorSession("q1", make_question(), sandbox)

        first = asyncio.ensure_future(session.run_code())
        await asyncio.sleep(0)
        assert session.busy is True

        with pytest.raises(SessionBusyError):
            await session.run_tests()
        with pytest.raises(SessionBusyError):
            await session.run_code()

        gate.set()
        await first
        assert session.busy is False
        return sandbox

    sandbox = asyncio.run(scenario())
    assert len(sandbox.sources) == 1


def test_run_uses_snapshot_of_source():
    async def scenario():
        gate = asyncio.Event()
        sandbox = EchoSandbox(gate)
        session = EditorSession("q1", make_question(), sandbox)
        session.update_source("print('first')")

        running = asyncio.ensure_future(session.run_code())
        await asyncio.sleep(0)
        session.update_source("print('second')")
        gate.set()
        await running
        return sandbox, session

    sandbox, session = asyncio.run(scenario())
    assert sandbox.sources == ["print('first')"]
    assert session.source == "print('second')"


def test_busy_flag_is_cleared_after_failure():
    class ExplodingSandbox:
        async def run(self, request, timeout_ms=None, memory_limit_mb=None):
            raise RuntimeError("boom")

    session = EditorSession("q1", make_question(), ExplodingSandbox())
    with pytest.raises(RuntimeError):
        asyncio.run(session.run_code())
    assert session.busy is False


def test_real_sandbox_graded_run(sandbox):
    question = make_question(sourceTemplate="print(input().upper())")
    question = question.model_copy(
        update={
            "test_cases": [
                {"input": "abc", "expected_output": "ABC"},
                {"input": "xyz", "expected_output": "XYZ"},
            ]
        }
    )
    session = EditorSession("q2", question, sandbox)

    public = asyncio.run(session.run_tests())

    assert public.passed_cases == 2
    assert session.output == "Test Results: 2/2 test cases passed"
