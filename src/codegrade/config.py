"""Configuration loader.

The grading engine reads its configuration from environment variables so that
the same image can back an assessment front end in development and in
production.  Reasonable defaults are provided so that local development works
out of the box.

Environment variables:

``CODEGRADE_API_KEY``
    Shared secret expected in the ``x-api-key`` header.  Authentication is
    skipped when empty.

``CODEGRADE_WORK_DIR``
    Base directory under which a throw-away scratch directory is created for
    every execution.  Defaults to ``codegrade`` inside the system temp dir.

``CODEGRADE_ALLOWED_LANGS``
    Comma-separated list of languages permitted for execution.  Defaults to
    ``python,javascript,shell``.  Aliases such as ``bash`` or ``js`` are
    accepted.

``CODEGRADE_DEFAULT_TIMEOUT_MS``
    Wall-clock timeout for a single execution when the question does not set
    its own time limit.  Default is 5000.

``CODEGRADE_MAX_MEMORY_MB``
    Memory limit used when a question does not provide one.  Default is 256.
    Only applied when ``CODEGRADE_ENFORCE_MEMORY_LIMIT`` is true.

``CODEGRADE_MAX_CPU_SECS``
    CPU time limit (``RLIMIT_CPU``) applied to each child process on POSIX.
    Default is 10.

``CODEGRADE_ENFORCE_MEMORY_LIMIT``
    If ``true``, the memory limit is applied as ``RLIMIT_AS``.  Defaults to
    ``false`` which keeps memory limits advisory.

``CODEGRADE_MAX_OUTPUT_BYTES``
    Combined size of standard output and standard error kept for a single
    execution.  A program that writes more is killed and its output
    truncated.  Default is 1048576.

``CODEGRADE_PROVISION_TIMEOUT_SECS``
    Timeout for probing an interpreter binary.  Default is 10.

``CODEGRADE_PYTHON_BIN``, ``CODEGRADE_NODE_BIN``, ``CODEGRADE_BASH_BIN``
    Interpreter binaries.  Default to the running interpreter, ``node`` and
    ``bash``.

``CODEGRADE_LOG_LEVEL``
    Level of the ``codegrade`` logger.  Defaults to ``INFO``.

``PORT``
    The port on which the API server listens.  Defaults to 8080.
"""

from __future__ import annotations

import os
import sys
import tempfile
from dataclasses import dataclass, field
from typing import Dict, List

from .language import Language


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y"}


def _int_var(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        raise ValueError(f"Invalid integer for {name}: {val}")


@dataclass
class Config:
    """Centralised configuration object."""

    api_key: str = ""
    work_dir: str = field(default_factory=lambda: os.path.join(tempfile.gettempdir(), "codegrade"))
    allowed_langs: List[Language] = field(default_factory=lambda: list(Language))
    default_timeout_ms: int = 5000
    max_memory_mb: int = 256
    max_cpu_secs: int = 10
    enforce_memory_limit: bool = False
    max_output_bytes: int = 1_048_576
    provision_timeout_secs: int = 10
    binaries: Dict[Language, str] = field(
        default_factory=lambda: {
            Language.PYTHON: sys.executable or "python3",
            Language.JAVASCRIPT: "node",
            Language.SHELL: "bash",
        }
    )
    log_level: str = "INFO"
    port: int = 8080

    @classmethod
    def load(cls) -> "Config":
        api_key = os.getenv("CODEGRADE_API_KEY", "")
        work_dir = os.getenv(
            "CODEGRADE_WORK_DIR", os.path.join(tempfile.gettempdir(), "codegrade")
        )

        allowed_langs_env = os.getenv("CODEGRADE_ALLOWED_LANGS", "python,javascript,shell")
        allowed_langs = []
        for name in allowed_langs_env.split(","):
            if not name.strip():
                continue
            try:
                language = Language.parse(name)
            except ValueError:
                raise ValueError(f"Invalid CODEGRADE_ALLOWED_LANGS entry: {name.strip()}")
            if language not in allowed_langs:
                allowed_langs.append(language)

        default_timeout_ms = _int_var("CODEGRADE_DEFAULT_TIMEOUT_MS", 5000)
        if default_timeout_ms <= 0:
            raise ValueError("CODEGRADE_DEFAULT_TIMEOUT_MS must be positive")

        max_output_bytes = _int_var("CODEGRADE_MAX_OUTPUT_BYTES", 1_048_576)
        if max_output_bytes <= 0:
            raise ValueError("CODEGRADE_MAX_OUTPUT_BYTES must be positive")

        binaries = {
            Language.PYTHON: os.getenv("CODEGRADE_PYTHON_BIN") or sys.executable or "python3",
            Language.JAVASCRIPT: os.getenv("CODEGRADE_NODE_BIN", "node"),
            Language.SHELL: os.getenv("CODEGRADE_BASH_BIN", "bash"),
        }

        return cls(
            api_key=api_key,
            work_dir=work_dir,
            allowed_langs=allowed_langs,
            default_timeout_ms=default_timeout_ms,
            max_memory_mb=_int_var("CODEGRADE_MAX_MEMORY_MB", 256),
            max_cpu_secs=_int_var("CODEGRADE_MAX_CPU_SECS", 10),
            enforce_memory_limit=_parse_bool(os.getenv("CODEGRADE_ENFORCE_MEMORY_LIMIT"), False),
            max_output_bytes=max_output_bytes,
            provision_timeout_secs=_int_var("CODEGRADE_PROVISION_TIMEOUT_SECS", 10),
            binaries=binaries,
            log_level=os.getenv("CODEGRADE_LOG_LEVEL", "INFO").upper(),
            port=_int_var("PORT", 8080),
        )

    @classmethod
    def from_env(cls) -> "Config":
        """
        Alternate constructor used by the API to load configuration.

        This wrapper calls :meth:`load` to construct the configuration.
        """
        return cls.load()
