"""
Executor for running JavaScript snippets with Node.js.

Snippets are written for an in-page editor, so they are compiled as the body
of a function rather than as a module: a bare ``return 2 + 2`` is legal and
its value becomes the program's output when nothing was printed.  The
harness below reads standard input up front and hands it to the snippet as
the ``input`` string, so reading input never blocks.
"""

from __future__ import annotations

import json
from pathlib import Path

from ..language import Language
from .base import CodeExecutor, ExecutionRequest, PreparedCommand

HARNESS = r"""
'use strict';
const fs = require('fs');

const source = fs.readFileSync(process.argv[2], 'utf8');
const call = process.argv[3] ? JSON.parse(fs.readFileSync(process.argv[3], 'utf8')) : null;
let input = '';
try {
  input = fs.readFileSync(0, 'utf8');
} catch (err) {
  input = '';
}

let printed = false;
const write = process.stdout.write.bind(process.stdout);
process.stdout.write = (chunk, ...rest) => {
  printed = true;
  return write(chunk, ...rest);
};

function format(value) {
  if (typeof value === 'string') return value;
  if (value !== null && typeof value === 'object') {
    try {
      return JSON.stringify(value);
    } catch (err) {
      return String(value);
    }
  }
  return String(value);
}

function fail(err) {
  const message = err && err.stack ? err.stack : String(err);
  process.stderr.write(message + '\n');
  if (err && err.name && err.message !== undefined) {
    process.stderr.write(err.name + ': ' + err.message + '\n');
  }
  process.exitCode = 1;
}

let body = source;
if (call) {
  body += '\n;return (typeof ' + call.name + " === 'function') ? " + call.name +
    '(...__args) : (() => { throw new ReferenceError("Function \'' + call.name + '\' not found"); })();';
}

(async () => {
  const main = new Function('require', 'input', '__args', body);
  const result = await main(require, input, call ? call.args : []);
  if (!printed && result !== undefined) {
    console.log(format(result));
  }
})().catch(fail);
"""


class JavaScriptExecutor(CodeExecutor):
    """Execute JavaScript snippets in an isolated directory using Node.js."""

    language = Language.JAVASCRIPT
    supports_memory_limit = False

    def prepare(self, session_dir: Path, request: ExecutionRequest) -> PreparedCommand:
        script_path = session_dir / "snippet.js"
        script_path.write_text(request.source_code, encoding="utf-8")
        harness_path = session_dir / "__harness__.js"
        harness_path.write_text(HARNESS, encoding="utf-8")
        args = [self.executable, str(harness_path), str(script_path)]
        if request.call is not None:
            call_path = session_dir / "call.json"
            call = {"name": request.call.name, "args": list(request.call.args)}
            call_path.write_text(json.dumps(call), encoding="utf-8")
            args.append(str(call_path))
        return PreparedCommand(args=args, stdin=request.stdin)
