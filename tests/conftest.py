"""Shared fixtures for the grading engine tests."""

from __future__ import annotations

import pytest

from codegrade.config import Config
from codegrade.provisioner import InterpreterProvisioner
from codegrade.sandbox import ExecutionSandbox


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(work_dir=str(tmp_path / "work"), default_timeout_ms=5000)


@pytest.fixture
def provisioner(config) -> InterpreterProvisioner:
    return InterpreterProvisioner(config)


@pytest.fixture
def sandbox(config, provisioner) -> ExecutionSandbox:
    return ExecutionSandbox(config, provisioner)
