"""Interpreter provisioning.

Before a language can be executed its interpreter has to be located and
checked.  The :class:`InterpreterProvisioner` does this lazily, once per
language for the lifetime of the process:

* concurrent :meth:`~InterpreterProvisioner.ensure_ready` calls for the same
  language share a single in-flight load;
* a successful load is cached as a :class:`ReadyHandle`;
* a failed load raises :class:`~codegrade.exceptions.ProvisionError` and
  resets the language to ``not_loaded`` so the next call retries.

The process-wide instance is returned by :func:`get_provisioner`; other
components obtain interpreter handles only through it.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from .config import Config
from .exceptions import ProvisionError
from .language import Language

logger = logging.getLogger(__name__)


class ProvisionState(str, Enum):
    NOT_LOADED = "not_loaded"
    LOADING = "loading"
    READY = "ready"


@dataclass(frozen=True)
class ReadyHandle:
    """A provisioned interpreter."""

    language: Language
    executable: str
    version: str


class InterpreterProvisioner:
    """Lazily resolves and checks interpreter binaries, one load per language."""

    def __init__(self, config: Config) -> None:
        self.config = config
        self._handles: Dict[Language, ReadyHandle] = {}
        self._loading: Dict[Language, "asyncio.Future[ReadyHandle]"] = {}

    def state(self, language: Language) -> ProvisionState:
        language = Language.parse(language)
        if language in self._handles:
            return ProvisionState.READY
        if language in self._loading:
            return ProvisionState.LOADING
        return ProvisionState.NOT_LOADED

    def reset(self) -> None:
        """Forget every cached handle.  In-flight loads are left to finish."""
        self._handles.clear()

    async def ensure_ready(self, language: Language) -> ReadyHandle:
        """Return the handle for ``language``, loading the interpreter if needed."""
        language = Language.parse(language)
        handle = self._handles.get(language)
        if handle is not None:
            return handle

        pending = self._loading.get(language)
        if pending is None:
            pending = asyncio.ensure_future(self._load(language))
            self._loading[language] = pending
            pending.add_done_callback(lambda fut, lang=language: self._finish(lang, fut))
        # Shielded so that one cancelled waiter does not abort the shared load.
        return await asyncio.shield(pending)

    def _finish(self, language: Language, future: "asyncio.Future[ReadyHandle]") -> None:
        if self._loading.get(language) is future:
            del self._loading[language]
        if future.cancelled():
            return
        exc = future.exception()
        if exc is None:
            self._handles[language] = future.result()

    async def _load(self, language: Language) -> ReadyHandle:
        if language not in self.config.allowed_langs:
            raise ProvisionError(language.value, "language is disabled by configuration")

        binary = self.config.binaries.get(language)
        if not binary:
            raise ProvisionError(language.value, "no interpreter binary configured")
        executable = shutil.which(binary)
        if executable is None:
            raise ProvisionError(language.value, f"interpreter '{binary}' was not found")

        logger.info("Provisioning %s runtime from %s", language.value, executable)
        version = await self._query_version(language, executable)
        logger.info("%s runtime ready: %s", language.value, version)
        return ReadyHandle(language=language, executable=executable, version=version)

    async def _query_version(self, language: Language, executable: str) -> str:
        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                "--version",
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            raise ProvisionError(language.value, f"could not start '{executable}': {exc}")

        try:
            output, _ = await asyncio.wait_for(
                process.communicate(), timeout=self.config.provision_timeout_secs
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise ProvisionError(
                language.value,
                f"'{executable} --version' did not answer within "
                f"{self.config.provision_timeout_secs} seconds",
            )

        text = output.decode("utf-8", errors="replace").strip()
        if process.returncode != 0:
            raise ProvisionError(
                language.value,
                f"'{executable} --version' exited with status {process.returncode}: {text[:200]}",
            )
        return text.splitlines()[0] if text else "unknown"


_PROVISIONER: Optional[InterpreterProvisioner] = None


def get_provisioner(config: Optional[Config] = None) -> InterpreterProvisioner:
    """Return the process-wide provisioner, creating it on first use."""
    global _PROVISIONER
    if _PROVISIONER is None:
        _PROVISIONER = InterpreterProvisioner(config or Config.from_env())
    return _PROVISIONER
