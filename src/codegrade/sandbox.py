"""Execution sandbox.

:meth:`ExecutionSandbox.run` is the single place where every failure of a
submitted program is turned into a value.  It never raises: provisioning
failures, timeouts, runtime errors, busy runtimes and unexpected sandbox
errors all come back as :class:`~codegrade.executor.base.ExecutionResult`
with ``error`` set.

Runs of the same language are serialized through a per-language run lock.
The executor kills a program, together with every process it started, once
it exceeds its time budget or its output limit.  The caller is released at
the timeout boundary (plus a short grace period for the kill) even if the
worker thread is still winding down.  In that case the lock is
held until the worker really finishes, and a later run that cannot obtain
the lock within its own budget gets a ``RuntimeBusy`` result.
"""

from __future__ import annotations

import asyncio
import logging
import tempfile
import time
from pathlib import Path
from typing import Dict, Optional

from .config import Config
from .exceptions import ProvisionError, UnsupportedLanguageError
from .executor import EXECUTOR_CLASSES, CodeExecutor
from .executor.base import ErrorKind, ExecutionRequest, ExecutionResult
from .language import Language
from .provisioner import InterpreterProvisioner, ReadyHandle, get_provisioner

logger = logging.getLogger(__name__)

# Extra time given to the executor to kill and reap a timed-out process
# before the caller is released regardless.
KILL_GRACE_MS = 250

NO_OUTPUT_NOTICE = "Code executed successfully (no output)"


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class ExecutionSandbox:
    """Runs execution requests in fresh processes with per-language run locks."""

    def __init__(
        self,
        config: Config,
        provisioner: Optional[InterpreterProvisioner] = None,
    ) -> None:
        self.config = config
        self.provisioner = provisioner or get_provisioner(config)
        self._locks: Dict[Language, asyncio.Lock] = {}
        self._executors: Dict[ReadyHandle, CodeExecutor] = {}

    def _lock_for(self, language: Language) -> asyncio.Lock:
        lock = self._locks.get(language)
        if lock is None:
            lock = self._locks[language] = asyncio.Lock()
        return lock

    def _executor_for(self, handle: ReadyHandle) -> CodeExecutor:
        executor = self._executors.get(handle)
        if executor is None:
            executor_cls = EXECUTOR_CLASSES[handle.language]
            executor = executor_cls(
                handle.executable,
                max_memory_mb=self.config.max_memory_mb,
                max_cpu_secs=self.config.max_cpu_secs,
                enforce_memory_limit=self.config.enforce_memory_limit,
                max_output_bytes=self.config.max_output_bytes,
            )
            self._executors[handle] = executor
        return executor

    def _execute_isolated(
        self,
        executor: CodeExecutor,
        request: ExecutionRequest,
        timeout_ms: int,
        memory_limit_mb: Optional[int],
    ) -> ExecutionResult:
        work_dir = Path(self.config.work_dir)
        work_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(dir=str(work_dir), prefix="run-") as tmpdir:
            return executor.execute(Path(tmpdir), request, timeout_ms, memory_limit_mb)

    async def run(
        self,
        request: ExecutionRequest,
        timeout_ms: Optional[int] = None,
        memory_limit_mb: Optional[int] = None,
    ) -> ExecutionResult:
        """Execute ``request`` and return its result.  Never raises."""
        timeout_ms = timeout_ms or self.config.default_timeout_ms
        started = time.perf_counter()
        try:
            result = await self._run(request, timeout_ms, memory_limit_mb, started)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Sandbox failure while running %s code", request.language)
            result = ExecutionResult.failure(
                ErrorKind.RUNTIME, f"Sandbox error: {exc}", _elapsed_ms(started)
            )
        logger.info(
            "Executed %s code: outcome=%s, wall_time_ms=%s",
            getattr(request.language, "value", request.language),
            result.error.kind.value if result.error else "ok",
            result.wall_time_ms,
        )
        return result

    async def _run(
        self,
        request: ExecutionRequest,
        timeout_ms: int,
        memory_limit_mb: Optional[int],
        started: float,
    ) -> ExecutionResult:
        try:
            language = Language.parse(request.language)
        except UnsupportedLanguageError as exc:
            return ExecutionResult.failure(ErrorKind.PROVISION, str(exc), _elapsed_ms(started))

        try:
            handle = await self.provisioner.ensure_ready(language)
        except ProvisionError as exc:
            logger.warning("%s", exc)
            return ExecutionResult.failure(ErrorKind.PROVISION, str(exc), _elapsed_ms(started))

        lock = self._lock_for(language)
        try:
            await asyncio.wait_for(lock.acquire(), timeout=timeout_ms / 1000.0)
        except asyncio.TimeoutError:
            return ExecutionResult.failure(
                ErrorKind.RUNTIME_BUSY,
                f"The {language.value} runtime is still busy with a previous run",
                _elapsed_ms(started),
            )

        executor = self._executor_for(handle)
        loop = asyncio.get_running_loop()
        try:
            job = loop.run_in_executor(
                None, self._execute_isolated, executor, request, timeout_ms, memory_limit_mb
            )
        except BaseException:
            lock.release()
            raise
        # The lock follows the worker, not the caller.
        job.add_done_callback(lambda _: lock.release())

        try:
            return await asyncio.wait_for(
                asyncio.shield(job), timeout=(timeout_ms + KILL_GRACE_MS) / 1000.0
            )
        except asyncio.TimeoutError:
            logger.warning(
                "%s run did not return within %d ms; releasing caller", language.value, timeout_ms
            )
            return ExecutionResult.failure(
                ErrorKind.TIMEOUT,
                f"Execution timed out after {timeout_ms} ms",
                _elapsed_ms(started),
            )


def render_plain(result: ExecutionResult) -> str:
    """Text shown in the output pane after a plain run."""
    if result.error is not None:
        text = result.error.display()
        if result.stdout:
            return result.stdout.rstrip("\n") + "\n" + text
        return text
    if not result.stdout:
        return NO_OUTPUT_NOTICE
    return result.stdout


_SANDBOX: Optional[ExecutionSandbox] = None


def get_sandbox(config: Optional[Config] = None) -> ExecutionSandbox:
    """Return the process-wide sandbox, creating it on first use.

    Its run locks make each language runtime an exclusive resource for the
    whole process, so every caller outside tests should go through here.
    """
    global _SANDBOX
    if _SANDBOX is None:
        _SANDBOX = ExecutionSandbox(config or Config.from_env(), get_provisioner(config))
    return _SANDBOX
