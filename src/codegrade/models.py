"""Pydantic models for question ingestion and the HTTP API.

Question definitions arrive as loosely typed data from the question source:
camelCase or snake_case keys, numbers where strings are expected, and
expected outputs stored under one of several legacy field names.
:class:`QuestionDefinition` validates them into the engine's immutable
:class:`~codegrade.grader.TestCase` values at this boundary, so nothing
downstream has to deal with missing fields.  A malformed test case entry is
kept as a case without an expectation, which always fails.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .grader import IOConfig, TestCase
from .language import Language

# Checked in order; the first non-blank value wins.
EXPECTED_OUTPUT_FIELDS = ("expected_output", "expectedOutput", "expected", "output", "result")


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def coerce_test_case(index: int, raw: Any) -> TestCase:
    """Map one raw test case entry to a :class:`TestCase`."""
    description = f"Test case {index + 1}"
    if not isinstance(raw, dict):
        return TestCase(input="", expected_output="", description=description)

    expected = ""
    for name in EXPECTED_OUTPUT_FIELDS:
        candidate = _text(raw.get(name))
        if candidate.strip():
            expected = candidate
            break
    return TestCase(
        input=_text(raw.get("input")),
        expected_output=expected,
        description=_text(raw.get("description")) or description,
    )


class QuestionDefinition(BaseModel):
    """A coding question as supplied by the question source."""

    model_config = ConfigDict(populate_by_name=True)

    language: Language = Language.PYTHON
    source_template: str = Field(default="", alias="sourceTemplate")
    test_cases: List[Any] = Field(default_factory=list, alias="testCases")
    time_limit_seconds: Optional[float] = Field(default=None, alias="timeLimitSeconds", gt=0)
    memory_limit_mb: Optional[int] = Field(
        default=None,
        alias="memoryLimitMb",
        gt=0,
        description="Advisory unless memory limits are enforced by configuration.",
    )
    io_mode: Literal["stdin", "function"] = Field(default="stdin", alias="ioMode")
    entrypoint: Optional[str] = None

    @field_validator("language", mode="before")
    @classmethod
    def _parse_language(cls, value: Any) -> Language:
        return Language.parse(value)

    @field_validator("test_cases", mode="before")
    @classmethod
    def _listify(cls, value: Any) -> List[Any]:
        if value is None:
            return []
        if isinstance(value, dict):
            return [value]
        return list(value)

    def cases(self) -> List[TestCase]:
        return [coerce_test_case(i, raw) for i, raw in enumerate(self.test_cases)]

    def io(self) -> IOConfig:
        return IOConfig(mode=self.io_mode, entrypoint=self.entrypoint)

    def timeout_ms(self) -> Optional[int]:
        if self.time_limit_seconds is None:
            return None
        return max(1, int(self.time_limit_seconds * 1000))


class ExecuteRequest(BaseModel):
    """Request body for a plain execution."""

    language: str = Field(default="python", description="python, javascript or shell.")
    code: str = Field(..., description="Source code to execute.")
    stdin: Optional[str] = Field(
        default=None, description="Standard input to pass to the program."
    )
    timeout_ms: Optional[int] = Field(default=None, gt=0)


class ErrorPayload(BaseModel):
    kind: str
    message: str


class ExecuteResponse(BaseModel):
    """Response body for a plain execution."""

    stdout: str
    stderr: str
    error: Optional[ErrorPayload] = None
    wall_time_ms: int
    output: str = Field(..., description="Text for the output pane.")


class RuntimeInfo(BaseModel):
    language: str
    state: str
    executable: Optional[str] = None
    version: Optional[str] = None


class SourceUpdateRequest(BaseModel):
    source: str


class SessionInfo(BaseModel):
    """Metadata about an editor session."""

    session_id: str
    question_id: str
    language: str
    created_at: datetime
    source: str
    busy: bool
    total_cases: int


class SessionCreateRequest(BaseModel):
    question_id: Optional[str] = None
    question: QuestionDefinition


class GradedRunResponse(BaseModel):
    """Public result of a graded run.  Hidden cases carry only pass/fail."""

    total_cases: int
    passed_cases: int
    per_case: List[Dict[str, Any]]
    output: str
