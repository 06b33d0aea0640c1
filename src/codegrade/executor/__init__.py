"""
Execution backends for the grading engine.

This package exposes concrete executors for supported languages.  The
sandbox selects the executor for a request's language once the provisioner
has resolved the interpreter binary.  Each executor is responsible for
writing user code to a scratch directory and building the interpreter
command; the base class runs it, enforces limits and classifies the
outcome.  Additional executors can be added by implementing the
``CodeExecutor`` interface from ``base.py``.
"""

from ..language import Language
from .base import (
    CodeExecutor,
    ErrorInfo,
    ErrorKind,
    ExecutionRequest,
    ExecutionResult,
    FunctionCall,
)
from .javascript_executor import JavaScriptExecutor
from .python_executor import PythonExecutor
from .shell_executor import ShellExecutor

EXECUTOR_CLASSES = {
    Language.PYTHON: PythonExecutor,
    Language.JAVASCRIPT: JavaScriptExecutor,
    Language.SHELL: ShellExecutor,
}

__all__ = [
    "CodeExecutor",
    "ErrorInfo",
    "ErrorKind",
    "ExecutionRequest",
    "ExecutionResult",
    "FunctionCall",
    "JavaScriptExecutor",
    "PythonExecutor",
    "ShellExecutor",
    "EXECUTOR_CLASSES",
]
