from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, TextIO

from gitstoremeta.accessor import read_metadata
from gitstoremeta.codec import check_schema, encode_record, format_header, record_path
from gitstoremeta.config import (
    SNAPSHOT_ENCODING,
    SNAPSHOT_ERRORS,
    StoreMetaConfig,
    read_snapshot_header,
)
from gitstoremeta.errors import FatalSetupError
from gitstoremeta.git import GitRepository
from gitstoremeta.models import ChangeKind, PendingChange
from gitstoremeta.store import path_sort_key, write_snapshot

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class UpdateStats:
    kept: int = 0
    refreshed: int = 0
    dropped: int = 0

    @property
    def written(self) -> int:
        return self.kept + self.refreshed


@dataclass(frozen=True, slots=True)
class _MergeEntry:
    path: str
    kind: ChangeKind
    line: str | None = None


def _ancestors(path: str) -> Iterator[str]:
    parts = path.split("/")[:-1]
    while parts:
        yield "/".join(parts)
        parts.pop()


def pending_changes(
    staged: Iterable[tuple[str, str]],
    directories: Iterable[str] = (),
    *,
    include_directories: bool = False,
) -> list[PendingChange]:
    """Turn ``(status, path)`` pairs from the index into merge entries.

    With directory tracking, every ancestor directory inherits the change kind
    of the path below it, and every directory still present in the tree gets a
    placeholder that cancels an inferred deletion.
    """
    changes: dict[PendingChange, None] = {}
    for status, path in staged:
        kind = ChangeKind.DELETED if status == "D" else ChangeKind.MODIFIED
        changes[PendingChange(path, kind)] = None
        if include_directories:
            for parent in _ancestors(path):
                changes[PendingChange(parent, kind)] = None
    if include_directories:
        for directory in directories:
            changes[PendingChange(directory, ChangeKind.PLACEHOLDER)] = None
    return list(changes)


def merge_snapshot(
    baseline_lines: Iterable[str],
    changes: Iterable[PendingChange],
    *,
    path_column: int,
    refresh: Callable[[str], str | None],
    stats: UpdateStats | None = None,
) -> Iterator[str]:
    """Merge baseline lines with pending changes, yielding the new body in order.

    Entries are ordered by (path bytes, rank) and, for each path, only the first
    entry decides the outcome. A placeholder decides nothing itself; it makes
    the entry after it count as the first one again.
    """
    stats = stats if stats is not None else UpdateStats()
    entries: list[_MergeEntry] = []
    for line in baseline_lines:
        line = line.rstrip("\r\n")
        if not line.strip():
            continue
        entries.append(_MergeEntry(record_path(line, path_column), ChangeKind.BASELINE, line))
    entries.extend(_MergeEntry(change.path, change.kind) for change in changes)
    entries.sort(key=lambda entry: (path_sort_key(entry.path), entry.kind))

    last_path: str | None = None
    for entry in entries:
        if entry.kind is ChangeKind.PLACEHOLDER:
            last_path = None
            continue
        if entry.path == last_path:
            if entry.kind is ChangeKind.BASELINE:
                logger.debug("Superseded baseline record for %s", entry.path)
            continue
        last_path = entry.path

        if entry.kind is ChangeKind.DELETED:
            stats.dropped += 1
            continue
        if entry.kind is ChangeKind.MODIFIED:
            line = refresh(entry.path)
            if line is None:
                stats.dropped += 1
                continue
            stats.refreshed += 1
            yield line
            continue
        stats.kept += 1
        yield entry.line or ""


def update(
    config: StoreMetaConfig,
    git: GitRepository | None = None,
    *,
    out: TextIO | None = None,
) -> UpdateStats:
    git = git or GitRepository(config.root)
    header = read_snapshot_header(config.snapshot_path)
    check_schema(header)
    fields = header.fields

    def _refresh(rel_path: str) -> str | None:
        record = read_metadata(config.resolve(rel_path), rel_path)
        if record is None:
            return None
        try:
            return encode_record(record, fields)
        except ValueError as exc:
            logger.warning("`%s' cannot be stored, skipped: %s", rel_path, exc)
            return None

    stats = UpdateStats()
    staging = config.temp_path()
    try:
        try:
            with config.snapshot_path.open(
                "r", encoding=SNAPSHOT_ENCODING, errors=SNAPSHOT_ERRORS
            ) as src, staging.open(
                "w", encoding=SNAPSHOT_ENCODING, errors=SNAPSHOT_ERRORS, newline="\n"
            ) as dst:
                src.readline()
                src.readline()
                for line in src:
                    dst.write(line)
        except OSError as exc:
            raise FatalSetupError(f"unable to stage {config.snapshot_path}: {exc}") from exc

        changes = pending_changes(
            git.staged_changes(),
            git.directories() if config.directory else (),
            include_directories=config.directory,
        )
        tracked_snapshot = git.tracked_path(config.snapshot_path)
        if tracked_snapshot is not None:
            changes.append(PendingChange(tracked_snapshot, ChangeKind.MODIFIED))

        with staging.open("r", encoding=SNAPSHOT_ENCODING, errors=SNAPSHOT_ERRORS) as baseline:
            lines = merge_snapshot(
                baseline,
                changes,
                path_column=header.path_column,
                refresh=_refresh,
                stats=stats,
            )
            write_snapshot(config, format_header(fields), lines, out=out)
    finally:
        staging.unlink(missing_ok=True)

    logger.debug(
        "Update kept %d, refreshed %d, dropped %d record(s)",
        stats.kept,
        stats.refreshed,
        stats.dropped,
    )
    return stats
