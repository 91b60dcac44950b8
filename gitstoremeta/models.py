from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum


FIELD_FILE = "file"
FIELD_TYPE = "type"
FIELD_MTIME = "mtime"
FIELD_ATIME = "atime"
FIELD_MODE = "mode"
FIELD_UID = "uid"
FIELD_GID = "gid"
FIELD_USER = "user"
FIELD_GROUP = "group"

REQUIRED_FIELDS = (FIELD_FILE, FIELD_TYPE)
ALL_FIELDS = (
    FIELD_FILE,
    FIELD_TYPE,
    FIELD_MTIME,
    FIELD_ATIME,
    FIELD_MODE,
    FIELD_UID,
    FIELD_GID,
    FIELD_USER,
    FIELD_GROUP,
)


class FileType(str, Enum):
    FILE = "f"
    DIRECTORY = "d"
    SYMLINK = "l"


class ChangeKind(IntEnum):
    """Merge rank of an entry; lower ranks win for the same path."""

    DELETED = 0
    PLACEHOLDER = 1
    MODIFIED = 2
    BASELINE = 3


@dataclass(slots=True)
class MetadataRecord:
    path: str
    type: FileType
    mtime: int | None = None
    atime: int | None = None
    mode: int | None = None
    uid: int | None = None
    gid: int | None = None
    user: str | None = None
    group: str | None = None


@dataclass(frozen=True, slots=True)
class PendingChange:
    path: str
    kind: ChangeKind


@dataclass(slots=True)
class SnapshotHeader:
    app: str
    version: str
    fields: tuple[str, ...]

    @property
    def path_column(self) -> int:
        return self.fields.index(FIELD_FILE)
