from __future__ import annotations

import os
import re
import time
from dataclasses import dataclass
from pathlib import Path

from gitstoremeta.codec import parse_header
from gitstoremeta.errors import FatalSetupError, MalformedSnapshotError, NoSnapshotError
from gitstoremeta.models import ALL_FIELDS, REQUIRED_FIELDS, SnapshotHeader


SNAPSHOT_FILENAME = ".git_store_meta"
SNAPSHOT_ENCODING = "utf-8"
SNAPSHOT_ERRORS = "surrogateescape"


@dataclass(slots=True)
class StoreMetaConfig:
    root: Path
    snapshot_path: Path
    fields: tuple[str, ...] = ALL_FIELDS
    directory: bool = False
    dry_run: bool = False
    verbose: bool = False

    def temp_path(self, suffix: str = "tmp") -> Path:
        return self.snapshot_path.with_name(
            f"{self.snapshot_path.name}.{suffix}{time.time_ns()}.{os.getpid()}"
        )

    def resolve(self, rel_path: str) -> Path:
        return self.root / rel_path


def snapshot_path(root: Path, target: str | None = None) -> Path:
    if target:
        return Path(target).expanduser()
    return root / SNAPSHOT_FILENAME


def parse_field_option(value: str) -> list[str]:
    names = [name.strip() for name in re.split(r",\s*", value.strip()) if name.strip()]
    unknown = [name for name in names if name not in ALL_FIELDS]
    if unknown:
        raise ValueError(
            f"unknown field(s): {', '.join(unknown)}. Choose from: {', '.join(ALL_FIELDS)}"
        )
    return names


def resolve_fields(
    field_option: str | None,
    snapshot_fields: tuple[str, ...] | None,
    *,
    use_snapshot: bool = False,
) -> tuple[str, ...]:
    """Pick the field list for an invocation.

    ``use_snapshot`` forces the fields of the existing snapshot (update never
    changes the column layout). Otherwise an explicit ``--field`` list wins,
    then the snapshot's fields, then every known field.
    """
    if use_snapshot and snapshot_fields is not None:
        parts: list[str] = list(snapshot_fields)
    elif field_option:
        parts = [*REQUIRED_FIELDS, *parse_field_option(field_option)]
    elif snapshot_fields is not None:
        parts = list(snapshot_fields)
    else:
        parts = list(ALL_FIELDS)

    fields: list[str] = []
    for name in parts:
        if name in ALL_FIELDS and name not in fields:
            fields.append(name)
    return tuple(fields)


def read_snapshot_header(path: Path) -> SnapshotHeader:
    if not path.is_file():
        raise NoSnapshotError(f"{path} doesn't exist.")
    try:
        with path.open("r", encoding=SNAPSHOT_ENCODING, errors=SNAPSHOT_ERRORS) as fh:
            first_line = fh.readline()
            second_line = fh.readline()
    except OSError as exc:
        raise FatalSetupError(f"unable to access {path}: {exc}") from exc
    return parse_header(first_line, second_line)


def try_read_snapshot_fields(path: Path) -> tuple[str, ...] | None:
    try:
        return read_snapshot_header(path).fields
    except (NoSnapshotError, MalformedSnapshotError, FatalSetupError):
        return None
