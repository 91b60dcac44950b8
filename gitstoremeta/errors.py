"""Exception types raised by the store, update and apply engines.

Convention:
- ``FatalSetupError`` and its subclasses abort before anything is written.
- ``MalformedSnapshotError`` and ``UnsupportedSchemaError`` abort the operation
  that read the snapshot.
- ``NoSnapshotError`` is fatal for update and a clean no-op for apply; the CLI
  decides which.
- Problems with a single path are never raised; the engines log a warning and
  continue with the next path or field.
"""

from __future__ import annotations


class StoreMetaError(Exception):
    """Base class for all errors reported to the command line."""


class FatalSetupError(StoreMetaError):
    """The environment does not allow the operation to start."""


class GitCommandError(FatalSetupError):
    def __init__(self, command: str, returncode: int, stderr: str = "") -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip() or "no stderr"
        super().__init__(f"`{command}` failed (exit {returncode}): {detail}")


class NoSnapshotError(StoreMetaError):
    pass


class MalformedSnapshotError(StoreMetaError):
    pass


class UnsupportedSchemaError(StoreMetaError):
    pass
