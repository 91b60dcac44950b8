"""Shared test fixtures for git-store-meta."""

from __future__ import annotations

import shutil
import subprocess
from typing import TYPE_CHECKING

import pytest

from gitstoremeta.config import SNAPSHOT_FILENAME, StoreMetaConfig

if TYPE_CHECKING:
    from pathlib import Path


def run_git(root: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=root,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout


def commit_all(root: Path, message: str = "commit") -> None:
    run_git(root, "add", "-A")
    run_git(root, "commit", "-q", "--allow-empty", "-m", message)


def make_config(root: Path, **overrides: object) -> StoreMetaConfig:
    values: dict[str, object] = {"root": root, "snapshot_path": root / SNAPSHOT_FILENAME}
    values.update(overrides)
    return StoreMetaConfig(**values)  # type: ignore[arg-type]


@pytest.fixture
def git_repo(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """An empty git working tree, also made the current directory."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    root = (tmp_path / "repo").resolve()
    root.mkdir()
    run_git(root, "init", "-q")
    run_git(root, "config", "user.email", "tests@localhost")
    run_git(root, "config", "user.name", "Tests")
    run_git(root, "config", "commit.gpgsign", "false")
    monkeypatch.chdir(root)
    return root
