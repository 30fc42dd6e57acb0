"""Pytest configuration for k3d_gitops tests.

The cmd-mox plugin is registered globally via pyproject.toml.
"""

from __future__ import annotations

import os
import typing as typ

import pytest

from k3d_gitops.config import Config
from tests.doubles import PopenSpawner, SubprocessRecorder

if typ.TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def test_env(tmp_path: Path) -> dict[str, str]:
    """Return a copy of the environment with KUBECONFIG pointing at a temp file.

    Copying ``os.environ`` keeps the PATH shims installed by cmd-mox.
    """
    env = dict(os.environ)
    env["KUBECONFIG"] = str(tmp_path / "kubeconfig-test.yaml")
    return env


@pytest.fixture
def cfg(tmp_path: Path) -> Config:
    """Return a Config whose files and directories live under ``tmp_path``."""
    return Config(
        password_file=tmp_path / "argocd-password.txt",
        connection_file=tmp_path / "argocd-connection.txt",
        argocd_config_dir=tmp_path / "home" / ".argocd",
    )


@pytest.fixture
def recorder(monkeypatch: pytest.MonkeyPatch) -> SubprocessRecorder:
    """Patch ``subprocess.run`` with a fresh :class:`SubprocessRecorder`."""
    rec = SubprocessRecorder()
    monkeypatch.setattr("subprocess.run", rec)
    return rec


@pytest.fixture
def popen(monkeypatch: pytest.MonkeyPatch) -> PopenSpawner:
    """Patch ``subprocess.Popen`` with a recording :class:`PopenSpawner`."""
    spawner = PopenSpawner()
    monkeypatch.setattr("subprocess.Popen", spawner)
    return spawner
