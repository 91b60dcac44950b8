"""Git queries used by the store and update engines, via the git CLI."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path

from gitstoremeta.errors import FatalSetupError, GitCommandError

logger = logging.getLogger(__name__)

GIT = "git"


class GitRepository:
    """Wraps the git CLI for the working tree at ``root``."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def _run(self, *args: str, check: bool = True) -> subprocess.CompletedProcess[bytes]:
        """Run a git command in the working tree and capture raw output."""
        try:
            result = subprocess.run(
                [GIT, *args],
                cwd=self.root,
                check=False,
                capture_output=True,
            )
        except FileNotFoundError as exc:
            raise FatalSetupError(f"unable to run {GIT}: {exc}") from exc
        if check and result.returncode != 0:
            raise GitCommandError(
                " ".join([GIT, *args]),
                result.returncode,
                os.fsdecode(result.stderr),
            )
        return result

    @staticmethod
    def _split_z(output: bytes) -> list[str]:
        return [os.fsdecode(item) for item in output.split(b"\0") if item]

    def ensure_top_level(self) -> None:
        """Raise unless ``root`` is the top level of a git working tree."""
        result = self._run("rev-parse", "--show-cdup", check=False)
        if result.returncode != 0 or result.stdout.strip():
            raise FatalSetupError(
                "please switch current working directory to the top level of a git working tree."
            )

    def tracked_files(self) -> list[str]:
        return self._split_z(self._run("ls-files", "-z").stdout)

    def directories(self) -> list[str]:
        """Every directory of the tree currently recorded in the index."""
        tree = self._run("write-tree").stdout.decode("ascii").strip()
        return self._split_z(self._run("ls-tree", "-rdz", "--name-only", tree).stdout)

    def staged_changes(self) -> list[tuple[str, str]]:
        """Return ``(status, path)`` pairs for index changes relative to HEAD."""
        args = ["diff", "--cached", "--name-status", "--no-renames", "-z"]
        if not self.has_head():
            # Before the first commit everything in the index is an addition.
            args.append(self.empty_tree())
        items = self._split_z(self._run(*args).stdout)
        return [(items[i][:1], items[i + 1]) for i in range(0, len(items) - 1, 2)]

    def has_head(self) -> bool:
        return self._run("rev-parse", "--verify", "-q", "HEAD", check=False).returncode == 0

    def empty_tree(self) -> str:
        result = self._run("hash-object", "-t", "tree", os.devnull)
        return result.stdout.decode("ascii").strip()

    def tracked_path(self, path: Path) -> str | None:
        """Return the repository-relative form of ``path`` if git tracks it."""
        result = self._run("ls-files", "-z", "--error-unmatch", "--", str(path), check=False)
        if result.returncode != 0:
            return None
        names = self._split_z(result.stdout)
        if not names:
            return None
        logger.debug("Snapshot file %s is tracked", names[0])
        return names[0]
