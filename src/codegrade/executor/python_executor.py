"""
Executor for running Python code snippets.

The Python executor writes the submitted code to ``snippet.py`` in the scratch
directory and runs it with the provisioned interpreter in isolated mode
(``-I -B``: no user site-packages, no environment overrides, no bytecode
files).  In function mode a small wrapper executes the snippet in a fresh
namespace and calls the requested function with JSON-decoded arguments.
"""

from __future__ import annotations

import json
from pathlib import Path

from ..language import Language
from .base import CodeExecutor, ExecutionRequest, PreparedCommand

ISOLATION_FLAGS = ["-I", "-B"]

# Printed output wins over the return value; a ``None`` return prints nothing.
CALL_WRAPPER = """\
import contextlib
import io
import json
import sys

with open("snippet.py", encoding="utf-8") as f:
    source = f.read()
with open("call.json", encoding="utf-8") as f:
    call = json.load(f)

namespace = {"__name__": "__snippet__"}
exec(compile(source, "snippet.py", "exec"), namespace)

func = namespace.get(call["name"])
if not callable(func):
    raise NameError("Function '%s' not found" % call["name"])

captured = io.StringIO()
with contextlib.redirect_stdout(captured):
    result = func(*call["args"])

printed = captured.getvalue()
if printed:
    sys.stdout.write(printed)
elif result is not None:
    print(result)
"""


class PythonExecutor(CodeExecutor):
    """Execute Python code in an isolated directory using the provisioned interpreter."""

    language = Language.PYTHON

    def prepare(self, session_dir: Path, request: ExecutionRequest) -> PreparedCommand:
        script_path = session_dir / "snippet.py"
        script_path.write_text(request.source_code, encoding="utf-8")
        if request.call is None:
            return PreparedCommand(
                args=[self.executable, *ISOLATION_FLAGS, str(script_path)],
                stdin=request.stdin,
            )

        call = {"name": request.call.name, "args": list(request.call.args)}
        (session_dir / "call.json").write_text(json.dumps(call), encoding="utf-8")
        wrapper_path = session_dir / "__wrapper__.py"
        wrapper_path.write_text(CALL_WRAPPER, encoding="utf-8")
        return PreparedCommand(
            args=[self.executable, *ISOLATION_FLAGS, str(wrapper_path)],
            stdin=request.stdin,
        )
