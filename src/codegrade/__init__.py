"""Sandboxed code execution and grading engine.

This package runs candidate-submitted source code for coding questions
(Python, JavaScript and shell) in isolated child processes, with a
wall-clock timeout and captured output, and grades it against a question's
sample and hidden test cases.

The top-level modules include:

* ``config`` – configuration handling for environment variables.
* ``provisioner`` – lazy, once-per-process interpreter provisioning.
* ``executor`` – language-specific execution backends.
* ``sandbox`` – run locks, timeouts and failure normalization.
* ``harness`` – function-mode argument parsing for graded runs.
* ``grader`` – sequential test case evaluation.
* ``visibility`` – the sample/hidden disclosure policy.
* ``session`` – the editor controller and answer tracking.
* ``models`` – Pydantic models for question ingestion and the API.
* ``api`` – FastAPI application exposing HTTP endpoints.
"""

__version__ = "0.1.0"
