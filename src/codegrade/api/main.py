"""
FastAPI application for the grading engine.

This module configures the FastAPI application, registers routes for plain
execution, runtime provisioning and editor sessions, and enforces
authentication via an API key.  Graded runs only ever return the public
summary: hidden test case detail never leaves the engine.
"""

from __future__ import annotations

import logging
import uuid
from typing import Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..config import Config
from ..exceptions import (
    ProvisionError,
    SessionBusyError,
    SessionNotFoundError,
    UnsupportedLanguageError,
)
from ..executor.base import ExecutionRequest, ExecutionResult
from ..language import Language
from ..models import (
    ErrorPayload,
    ExecuteRequest,
    ExecuteResponse,
    GradedRunResponse,
    RuntimeInfo,
    SessionCreateRequest,
    SessionInfo,
    SourceUpdateRequest,
)
from ..provisioner import get_provisioner
from ..sandbox import get_sandbox, render_plain
from ..session import EditorSession, InMemoryAnswerTracker
from ..visibility import format_summary


logger = logging.getLogger("codegrade")

if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter("[codegrade] %(levelname)s - %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)


config = Config.from_env()
logger.setLevel(config.log_level)

logger.info(
    "Loaded config: work_dir=%s, allowed_langs=%s, default_timeout_ms=%s, enforce_memory_limit=%s",
    config.work_dir,
    [lang.value for lang in config.allowed_langs],
    config.default_timeout_ms,
    config.enforce_memory_limit,
)

provisioner = get_provisioner(config)
sandbox = get_sandbox(config)
tracker = InMemoryAnswerTracker()
sessions: Dict[str, EditorSession] = {}


app = FastAPI(title="Code Grading Service", version="0.1.0")


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": {"code": code, "message": message}})


@app.exception_handler(HTTPException)
async def http_exception_handler(_: Request, exc: HTTPException):
    return _error(exc.status_code, "http_error", str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "code": "invalid_request",
                "message": "Validation failed",
                "details": jsonable_encoder(exc.errors()),
            }
        },
    )


@app.exception_handler(UnsupportedLanguageError)
async def unsupported_language_handler(_: Request, exc: UnsupportedLanguageError):
    return _error(400, "unsupported_language", str(exc))


@app.exception_handler(SessionNotFoundError)
async def session_not_found_handler(_: Request, exc: SessionNotFoundError):
    return _error(404, "session_not_found", str(exc.args[0]) if exc.args else "Session not found")


@app.exception_handler(SessionBusyError)
async def session_busy_handler(_: Request, exc: SessionBusyError):
    return _error(409, "session_busy", str(exc))


@app.exception_handler(ProvisionError)
async def provision_error_handler(_: Request, exc: ProvisionError):
    return _error(503, "provision_error", str(exc))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error for %s %s", request.method, request.url.path)
    return _error(500, "internal_error", str(exc))


@app.middleware("http")
async def authenticate(request, call_next):
    """Middleware to enforce API key authentication on all requests."""
    path = request.url.path
    method = request.method
    client = getattr(request.client, "host", "unknown")

    logger.info("Incoming request: %s %s from %s", method, path, client)

    if config.api_key:
        provided_key = request.headers.get("x-api-key")
        if provided_key != config.api_key:
            logger.warning("Invalid API key for %s %s from %s", method, path, client)
            return _error(401, "unauthorized", "Invalid API key")

    response = await call_next(request)
    logger.info("Response: %s %s -> %s", method, path, response.status_code)
    return response


def _execute_response(result: ExecutionResult) -> ExecuteResponse:
    error = None
    if result.error is not None:
        error = ErrorPayload(kind=result.error.kind.value, message=result.error.message)
    return ExecuteResponse(
        stdout=result.stdout,
        stderr=result.stderr,
        error=error,
        wall_time_ms=result.wall_time_ms,
        output=render_plain(result),
    )


def _session(session_id: str) -> EditorSession:
    session = sessions.get(session_id)
    if session is None:
        raise SessionNotFoundError(f"Session {session_id} not found")
    return session


def _session_info(session_id: str, session: EditorSession) -> SessionInfo:
    return SessionInfo(
        session_id=session_id,
        question_id=session.question_id,
        language=session.language.value,
        created_at=session.created_at,
        source=session.source,
        busy=session.busy,
        total_cases=len(session.test_cases),
    )


@app.get("/health")
async def health() -> Dict[str, str]:
    """Return a simple health check response."""
    return {"status": "ok"}


@app.post("/exec", response_model=ExecuteResponse)
async def exec_root(req: ExecuteRequest) -> ExecuteResponse:
    """Plain execution of a snippet without a session."""
    language = Language.parse(req.language)
    logger.info("[/exec] Running %s code (%d chars)", language.value, len(req.code))
    request = ExecutionRequest(language=language, source_code=req.code, stdin=req.stdin)
    result = await sandbox.run(request, req.timeout_ms)
    return _execute_response(result)


@app.get("/v1/runtimes/{language}", response_model=RuntimeInfo)
async def runtime_state(language: str) -> RuntimeInfo:
    """Report whether a language runtime has been provisioned."""
    lang = Language.parse(language)
    return RuntimeInfo(language=lang.value, state=provisioner.state(lang).value)


@app.post("/v1/runtimes/{language}", response_model=RuntimeInfo)
async def provision_runtime(language: str) -> RuntimeInfo:
    """Provision a language runtime ahead of the first run."""
    lang = Language.parse(language)
    handle = await provisioner.ensure_ready(lang)
    return RuntimeInfo(
        language=lang.value,
        state=provisioner.state(lang).value,
        executable=handle.executable,
        version=handle.version,
    )


@app.post("/v1/sessions", response_model=SessionInfo)
async def create_session(req: SessionCreateRequest) -> SessionInfo:
    """Open an editor session for a coding question."""
    if req.question.language not in config.allowed_langs:
        raise UnsupportedLanguageError(f"Unsupported language: {req.question.language.value}")
    session_id = str(uuid.uuid4())
    question_id = req.question_id or session_id
    session = EditorSession(question_id, req.question, sandbox, tracker=tracker)
    sessions[session_id] = session
    logger.info(
        "Created session %s for question %s (%s, %d test cases)",
        session_id,
        question_id,
        session.language.value,
        len(session.test_cases),
    )
    return _session_info(session_id, session)


@app.get("/v1/sessions/{session_id}", response_model=SessionInfo)
async def get_session(session_id: str) -> SessionInfo:
    return _session_info(session_id, _session(session_id))


@app.delete("/v1/sessions/{session_id}")
async def delete_session(session_id: str) -> Dict[str, str]:
    """Close an editor session."""
    _session(session_id)
    del sessions[session_id]
    return {"detail": "Session deleted"}


@app.put("/v1/sessions/{session_id}/source", response_model=SessionInfo)
async def update_source(session_id: str, req: SourceUpdateRequest) -> SessionInfo:
    session = _session(session_id)
    session.update_source(req.source)
    return _session_info(session_id, session)


@app.post("/v1/sessions/{session_id}/run", response_model=ExecuteResponse)
async def run_code(session_id: str) -> ExecuteResponse:
    """Plain run of the session's current source."""
    result = await _session(session_id).run_code()
    return _execute_response(result)


@app.post("/v1/sessions/{session_id}/test", response_model=GradedRunResponse)
async def run_tests(session_id: str) -> GradedRunResponse:
    """Graded run of the session's current source against its test cases."""
    public = await _session(session_id).run_tests()
    data = public.to_dict()
    return GradedRunResponse(
        total_cases=data["total_cases"],
        passed_cases=data["passed_cases"],
        per_case=data["per_case"],
        output=format_summary(public),
    )
