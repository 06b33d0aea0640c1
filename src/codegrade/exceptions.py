"""Exceptions raised by the grading engine.

Failures of submitted code are never raised; they are reported as values in
:class:`~codegrade.executor.base.ExecutionResult`.  The exceptions here cover
the infrastructure around execution.
"""

from __future__ import annotations


class CodegradeError(Exception):
    """Base class for engine errors."""


class ProvisionError(CodegradeError):
    """An interpreter runtime could not be initialised.  Callers may retry."""

    def __init__(self, language: str, cause: str) -> None:
        super().__init__(f"Failed to provision {language} runtime: {cause}")
        self.language = language
        self.cause = cause


class UnsupportedLanguageError(CodegradeError, ValueError):
    """The requested language is unknown."""


class SessionBusyError(CodegradeError):
    """A run is already in flight for this editor session."""


class SessionNotFoundError(CodegradeError, KeyError):
    """No editor session exists with the given identifier."""
