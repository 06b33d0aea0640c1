"""
Base interfaces and dataclasses for code execution backends.

All concrete executors inherit from :class:`CodeExecutor` and implement
:meth:`CodeExecutor.prepare`, which writes the submitted source (and any
harness files) into a scratch directory and returns the command to run.
The shared :meth:`CodeExecutor.execute` runs that command in a fresh child
process, pipes standard input and output for this call only, enforces the
wall-clock timeout and the output limit by killing the process and
classifies the outcome into an :class:`ExecutionResult`.

Every run gets its own process, its own process group and its own
directory.  When a run ends, for whatever reason, the whole group is killed,
so nothing a program starts survives into the next run.  Executors require a
POSIX host.
"""

from __future__ import annotations

import abc
import logging
import os
import resource
import selectors
import signal
import subprocess
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple

from ..language import Language

logger = logging.getLogger(__name__)

# Markers that identify allocation failures in interpreter error output.
_MEMORY_MARKERS = (
    "MemoryError",
    "JavaScript heap out of memory",
    "Cannot allocate memory",
    "std::bad_alloc",
)

_CHUNK_SIZE = 65536
_POLL_SECS = 0.05


class ErrorKind(str, Enum):
    """Kinds of failure an execution can end with."""

    PROVISION = "ProvisionError"
    TIMEOUT = "Timeout"
    RUNTIME = "RuntimeError"
    RUNTIME_BUSY = "RuntimeBusy"
    MEMORY_LIMIT = "MemoryLimit"


@dataclass(frozen=True)
class ErrorInfo:
    """Structured failure of a single execution.

    Attributes
    ----------
    kind: ErrorKind
        Failure category.
    message: str
        Short human-readable message, e.g. the interpreter's last error line.
    detail: str
        Full diagnostic text (usually the captured standard error).
    """

    kind: ErrorKind
    message: str
    detail: str = ""

    def display(self) -> str:
        return f"{self.kind.value}: {self.message}"


@dataclass(frozen=True)
class FunctionCall:
    """Entrypoint invocation used by function-mode grading."""

    name: str
    args: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class ExecutionRequest:
    """A single execution of ``source_code``.  Built per run, never reused."""

    language: Language
    source_code: str
    stdin: Optional[str] = None
    call: Optional[FunctionCall] = None


@dataclass
class ExecutionResult:
    """Result of running a code snippet.

    ``stdout`` is always a string, even when the run failed, so callers can
    compare it without checking ``error`` first.  When ``error`` is ``None``
    the run succeeded and ``stdout`` is authoritative.

    Attributes
    ----------
    stdout: str
        Standard output captured from the execution.
    error: ErrorInfo or None
        Failure description, ``None`` on success.
    wall_time_ms: int
        Wall-clock execution time in milliseconds.
    stderr: str
        Standard error captured from the execution.
    exit_code: int
        Exit status of the process.  ``-9`` when killed on timeout.
    """

    stdout: str
    error: Optional[ErrorInfo] = None
    wall_time_ms: int = 0
    stderr: str = ""
    exit_code: int = 0

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        message: str,
        wall_time_ms: int = 0,
        detail: str = "",
        stdout: str = "",
    ) -> "ExecutionResult":
        return cls(
            stdout=stdout,
            error=ErrorInfo(kind=kind, message=message, detail=detail),
            wall_time_ms=wall_time_ms,
            stderr=detail,
            exit_code=-1,
        )


@dataclass
class PreparedCommand:
    """Command line and standard input produced by :meth:`CodeExecutor.prepare`."""

    args: List[str]
    stdin: Optional[str] = None


def last_error_line(stderr: str) -> str:
    """Return the interpreter's final non-empty error line."""
    for line in reversed(stderr.strip().splitlines()):
        if line.strip():
            return line.strip()
    return ""


def _within_hard_limit(kind: int, value: int) -> int:
    _, hard = resource.getrlimit(kind)
    if hard != resource.RLIM_INFINITY:
        return min(value, hard)
    return value


def _kill_group(process: subprocess.Popen) -> None:
    """Kill ``process`` and everything it started."""
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        # Every member of the group has already exited.
        pass


class CodeExecutor(abc.ABC):
    """
    Abstract base class defining the interface for code executors.

    Executors run user-supplied code in a scratch directory and return the
    captured output.  Subclasses override :meth:`prepare` to lay out the
    files for their language.
    """

    language: Language
    # Node reserves far more virtual memory than it uses, so RLIMIT_AS
    # cannot be applied to it.
    supports_memory_limit = True

    def __init__(
        self,
        executable: str,
        max_memory_mb: int = 256,
        max_cpu_secs: int = 10,
        enforce_memory_limit: bool = False,
        max_output_bytes: int = 1_048_576,
    ) -> None:
        """
        Parameters
        ----------
        executable: str
            Path of the interpreter binary, as resolved by the provisioner.
        max_memory_mb: int, optional
            Address-space limit in megabytes.  Only applied when
            ``enforce_memory_limit`` is set and the executor supports it.
        max_cpu_secs: int, optional
            CPU time limit in seconds applied as ``RLIMIT_CPU``.
        enforce_memory_limit: bool, optional
            Whether ``max_memory_mb`` is enforced or merely advisory.
        max_output_bytes: int, optional
            Combined size of standard output and standard error kept per
            run.  A program that writes more is killed.
        """
        self.executable = executable
        self.max_memory_mb = max_memory_mb
        self.max_cpu_secs = max_cpu_secs
        self.enforce_memory_limit = enforce_memory_limit
        self.max_output_bytes = max_output_bytes

    @abc.abstractmethod
    def prepare(self, session_dir: Path, request: ExecutionRequest) -> PreparedCommand:
        """Write the request's files into ``session_dir`` and build the command."""
        raise NotImplementedError

    def execute(
        self,
        session_dir: Path,
        request: ExecutionRequest,
        timeout_ms: int,
        memory_limit_mb: Optional[int] = None,
    ) -> ExecutionResult:
        """Run ``request`` in ``session_dir`` and classify the outcome.

        Parameters
        ----------
        session_dir: Path
            Scratch directory for this run.  The process runs with it as its
            working directory.
        request: ExecutionRequest
            What to run.
        timeout_ms: int
            Wall-clock budget.  The process is killed when it is exceeded.
        memory_limit_mb: int, optional
            Per-question memory limit overriding ``max_memory_mb``.
        """
        session_dir.mkdir(parents=True, exist_ok=True)
        prepared = self.prepare(session_dir, request)
        stdin_data = prepared.stdin
        if stdin_data and not stdin_data.endswith("\n"):
            stdin_data += "\n"
        result = self._run_subprocess(
            prepared.args,
            session_dir,
            timeout_ms,
            stdin_data=stdin_data,
            memory_limit_mb=memory_limit_mb or self.max_memory_mb,
        )
        return result

    def _limits(self, memory_limit_mb: int) -> Callable[[], None]:
        # Computed here so the child only makes setrlimit calls.
        limits = [(resource.RLIMIT_CPU, self.max_cpu_secs)]
        if self.enforce_memory_limit and self.supports_memory_limit:
            limits.append((resource.RLIMIT_AS, memory_limit_mb * 1024 * 1024))
        bounded = [(kind, _within_hard_limit(kind, value)) for kind, value in limits]

        def set_limits() -> None:
            for kind, value in bounded:
                resource.setrlimit(kind, (value, value))

        return set_limits

    def _run_subprocess(
        self,
        args: list[str],
        session_dir: Path,
        timeout_ms: int,
        stdin_data: Optional[str] = None,
        memory_limit_mb: int = 256,
    ) -> ExecutionResult:
        """
        Helper to invoke a subprocess with resource limits and capture
        output.

        The child is started in a new session so that it and everything it
        spawns share one process group.  Output is read in chunks until the
        deadline; the group is killed when the deadline passes, when the
        output limit is exceeded and when the child exits, which takes any
        background processes it left behind with it.  When ``stdin_data``
        is ``None`` standard input is ``/dev/null`` so a program reading
        input sees EOF instead of blocking.
        """
        start_time = time.monotonic()
        try:
            process = subprocess.Popen(
                args,
                cwd=str(session_dir),
                stdin=subprocess.PIPE if stdin_data is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,
                preexec_fn=self._limits(memory_limit_mb),
            )
        except (OSError, subprocess.SubprocessError) as exc:
            duration = int((time.monotonic() - start_time) * 1000)
            return ExecutionResult.failure(
                ErrorKind.RUNTIME, f"Could not start {self.language.value} interpreter: {exc}", duration
            )

        sel = selectors.DefaultSelector()
        sel.register(process.stdout, selectors.EVENT_READ, data="stdout")
        sel.register(process.stderr, selectors.EVENT_READ, data="stderr")

        pending_input = memoryview((stdin_data or "").encode("utf-8"))
        if process.stdin is not None:
            if pending_input:
                os.set_blocking(process.stdin.fileno(), False)
                sel.register(process.stdin, selectors.EVENT_WRITE, data="stdin")
            else:
                process.stdin.close()

        stdout = bytearray()
        stderr = bytearray()
        timed_out = False
        output_limit_exceeded = False
        group_killed = False
        deadline = start_time + timeout_ms / 1000.0

        try:
            while sel.get_map():
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    timed_out = process.poll() is None
                    break

                for key, _mask in sel.select(timeout=min(remaining, _POLL_SECS)):
                    if key.data == "stdin":
                        try:
                            written = os.write(key.fileobj.fileno(), pending_input[:_CHUNK_SIZE])
                        except BlockingIOError:
                            continue
                        except BrokenPipeError:
                            # The program exited without reading all of its input.
                            written = len(pending_input)
                        pending_input = pending_input[written:]
                        if not pending_input:
                            sel.unregister(key.fileobj)
                            key.fileobj.close()
                        continue

                    data = key.fileobj.read1(_CHUNK_SIZE)
                    if not data:
                        sel.unregister(key.fileobj)
                        continue
                    if key.data == "stdout":
                        stdout.extend(data)
                    else:
                        stderr.extend(data)

                if len(stdout) + len(stderr) > self.max_output_bytes:
                    output_limit_exceeded = True
                    break

                if not group_killed and process.poll() is not None:
                    # Background jobs would otherwise hold the pipes open.
                    _kill_group(process)
                    group_killed = True
            else:
                # Both pipes are closed but the program may still be running.
                try:
                    process.wait(timeout=max(0.0, deadline - time.monotonic()))
                except subprocess.TimeoutExpired:
                    timed_out = True
        finally:
            _kill_group(process)
            process.wait()
            duration = int((time.monotonic() - start_time) * 1000)
            sel.close()
            for stream in (process.stdin, process.stdout, process.stderr):
                if stream is not None and not stream.closed:
                    stream.close()

        stdout_text = bytes(stdout[: self.max_output_bytes]).decode("utf-8", errors="replace")
        stderr_text = bytes(stderr[: self.max_output_bytes]).decode("utf-8", errors="replace")
        exit_code = process.returncode

        if timed_out:
            logger.debug("%s process group killed after %d ms", self.language.value, timeout_ms)
            return ExecutionResult(
                stdout=stdout_text,
                error=ErrorInfo(
                    ErrorKind.TIMEOUT,
                    f"Execution timed out after {timeout_ms} ms",
                    stderr_text,
                ),
                wall_time_ms=duration,
                stderr=stderr_text,
                exit_code=-9,
            )
        if output_limit_exceeded:
            logger.debug("%s process group killed for writing too much output", self.language.value)
            return ExecutionResult(
                stdout=stdout_text,
                error=ErrorInfo(
                    ErrorKind.RUNTIME,
                    f"Output limit exceeded: output truncated after {self.max_output_bytes} bytes",
                    stderr_text,
                ),
                wall_time_ms=duration,
                stderr=stderr_text,
                exit_code=exit_code,
            )
        if exit_code != 0:
            return ExecutionResult(
                stdout=stdout_text,
                error=self._classify_failure(exit_code, stderr_text),
                wall_time_ms=duration,
                stderr=stderr_text,
                exit_code=exit_code,
            )
        return ExecutionResult(stdout=stdout_text, wall_time_ms=duration, stderr=stderr_text, exit_code=0)

    def _classify_failure(self, exit_code: int, stderr: str) -> ErrorInfo:
        if any(marker in stderr for marker in _MEMORY_MARKERS):
            return ErrorInfo(ErrorKind.MEMORY_LIMIT, "Memory limit exceeded", stderr)
        message = last_error_line(stderr)
        if not message and exit_code < 0:
            # Killed by a signal, e.g. SIGXCPU from the CPU rlimit.
            message = f"Process terminated by signal {-exit_code}"
        elif not message:
            message = f"Process exited with status {exit_code}"
        return ErrorInfo(ErrorKind.RUNTIME, message, stderr)
