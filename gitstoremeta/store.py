from __future__ import annotations

import logging
import os
import shutil
import sys
from typing import Callable, Iterable, Iterator, TextIO

from gitstoremeta.accessor import read_metadata
from gitstoremeta.codec import encode_record, format_header
from gitstoremeta.config import SNAPSHOT_ENCODING, SNAPSHOT_ERRORS, StoreMetaConfig
from gitstoremeta.errors import FatalSetupError
from gitstoremeta.git import GitRepository
from gitstoremeta.models import MetadataRecord

logger = logging.getLogger(__name__)


def path_sort_key(path: str) -> bytes:
    """Byte-wise ("C" collation) ordering key for a repository path."""
    return os.fsencode(path)


def candidate_paths(config: StoreMetaConfig, git: GitRepository) -> list[str]:
    paths = git.tracked_files()
    if config.directory:
        paths.extend(git.directories())
    return paths


def collect_records(
    config: StoreMetaConfig,
    git: GitRepository,
    *,
    on_path: Callable[[str], None] | None = None,
) -> list[MetadataRecord]:
    records: dict[str, MetadataRecord] = {}
    for rel_path in candidate_paths(config, git):
        if on_path is not None:
            on_path(rel_path)
        if rel_path in records:
            continue
        record = read_metadata(config.resolve(rel_path), rel_path)
        if record is None:
            logger.debug("Skipping %s: missing or unsupported file type", rel_path)
            continue
        records[rel_path] = record
    return sorted(records.values(), key=lambda r: path_sort_key(r.path))


def encode_records(records: Iterable[MetadataRecord], fields: tuple[str, ...]) -> list[str]:
    lines: list[str] = []
    for record in records:
        try:
            lines.append(encode_record(record, fields))
        except ValueError as exc:
            logger.warning("`%s' cannot be stored, skipped: %s", record.path, exc)
    return lines


def _write_error(config: StoreMetaConfig, exc: OSError) -> FatalSetupError:
    return FatalSetupError(f"unable to write {config.snapshot_path}: {exc}")


def write_snapshot(
    config: StoreMetaConfig,
    header: str,
    lines: Iterable[str],
    *,
    out: TextIO | None = None,
) -> None:
    """Write a complete snapshot, or print it when running in dry-run mode.

    The target is replaced in one rename, so readers never see a partial file.
    An existing snapshot keeps its permission bits. Errors raised while
    producing ``lines`` propagate unchanged.
    """
    if config.dry_run:
        stream = out or sys.stdout
        stream.write(header)
        for line in lines:
            stream.write(f"{line}\n")
        return

    staging = config.temp_path("new")
    try:
        try:
            fh = staging.open("w", encoding=SNAPSHOT_ENCODING, errors=SNAPSHOT_ERRORS, newline="\n")
        except OSError as exc:
            raise _write_error(config, exc) from exc
        with fh:
            for chunk in _chunks(header, lines):
                try:
                    fh.write(chunk)
                except OSError as exc:
                    raise _write_error(config, exc) from exc
            try:
                fh.flush()
            except OSError as exc:
                raise _write_error(config, exc) from exc
        try:
            if config.snapshot_path.is_file():
                shutil.copymode(config.snapshot_path, staging)
            os.replace(staging, config.snapshot_path)
        except OSError as exc:
            raise _write_error(config, exc) from exc
    finally:
        staging.unlink(missing_ok=True)


def _chunks(header: str, lines: Iterable[str]) -> Iterator[str]:
    yield header
    for line in lines:
        yield f"{line}\n"


def store(
    config: StoreMetaConfig,
    git: GitRepository | None = None,
    *,
    out: TextIO | None = None,
    on_path: Callable[[str], None] | None = None,
) -> int:
    """Snapshot every tracked path. Returns the number of stored records."""
    git = git or GitRepository(config.root)
    records = collect_records(config, git, on_path=on_path)
    lines = encode_records(records, config.fields)
    write_snapshot(config, format_header(config.fields), lines, out=out)
    logger.debug("Stored %d record(s) to %s", len(lines), config.snapshot_path)
    return len(lines)

