"""
Executor for running shell scripts.

The shell executor writes the provided script to ``snippet.sh`` in the scratch
directory and invokes the provisioned ``bash`` on that file.  In function
mode a call to the requested shell function is appended to the script and
the arguments are passed as positional parameters, so ``"$1"`` inside the
function refers to the first argument.
"""

from __future__ import annotations

import json
from pathlib import Path

from ..language import Language
from .base import CodeExecutor, ExecutionRequest, PreparedCommand


def _shell_arg(value) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return str(value)


class ShellExecutor(CodeExecutor):
    """Execute shell scripts with bash in an isolated directory."""

    language = Language.SHELL

    def prepare(self, session_dir: Path, request: ExecutionRequest) -> PreparedCommand:
        script_path = session_dir / "snippet.sh"
        content = request.source_code
        if request.call is not None:
            content = content.rstrip("\n") + f'\n{request.call.name} "$@"\n'
        script_path.write_text(content, encoding="utf-8")
        # Ensure the script is executable
        script_path.chmod(0o700)
        args = [self.executable, str(script_path)]
        if request.call is not None:
            args.extend(_shell_arg(arg) for arg in request.call.args)
        return PreparedCommand(args=args, stdin=request.stdin)
