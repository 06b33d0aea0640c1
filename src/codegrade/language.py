"""Supported execution targets."""

from __future__ import annotations

from enum import Enum

from .exceptions import UnsupportedLanguageError

_ALIASES = {
    "python": "python",
    "python3": "python",
    "py": "python",
    "javascript": "javascript",
    "js": "javascript",
    "node": "javascript",
    "nodejs": "javascript",
    "shell": "shell",
    "bash": "shell",
    "sh": "shell",
}


class Language(str, Enum):
    """Language of a coding question.  Fixed for the lifetime of a question."""

    PYTHON = "python"
    JAVASCRIPT = "javascript"
    SHELL = "shell"

    @classmethod
    def parse(cls, value: "str | Language") -> "Language":
        """Resolve a language name or alias.

        Raises :class:`UnsupportedLanguageError` (a ``ValueError``) for unknown
        names.
        """
        if isinstance(value, Language):
            return value
        key = str(value).strip().lower()
        if key not in _ALIASES:
            raise UnsupportedLanguageError(f"Unsupported language: {value}")
        return cls(_ALIASES[key])
