from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from gitstoremeta.accessor import (
    file_type,
    lookup_gid,
    lookup_uid,
    set_group,
    set_mode,
    set_owner,
    set_times,
)
from gitstoremeta.codec import check_schema, decode_record, timestamp_to_text
from gitstoremeta.config import (
    SNAPSHOT_ENCODING,
    SNAPSHOT_ERRORS,
    StoreMetaConfig,
    read_snapshot_header,
)
from gitstoremeta.models import (
    FIELD_ATIME,
    FIELD_GID,
    FIELD_GROUP,
    FIELD_MODE,
    FIELD_MTIME,
    FIELD_UID,
    FIELD_USER,
    FileType,
    MetadataRecord,
)

logger = logging.getLogger(__name__)


class FieldError(Exception):
    """A single field could not be applied to a single path."""


@dataclass(slots=True)
class ApplyResult:
    processed: int = 0
    skipped: int = 0
    rebuilt: int = 0
    fields_applied: int = 0
    warnings: int = 0


@dataclass(frozen=True, slots=True)
class FieldApplier:
    """How to restore one field, and which field it makes unnecessary."""

    field: str
    describe: Callable[[MetadataRecord], str | None]
    apply: Callable[[Path, MetadataRecord, bool, bool], None]
    fallback: str | None = None
    applies_to_links: bool = True


def _apply_user(path: Path, record: MetadataRecord, is_link: bool, execute: bool) -> None:
    uid = lookup_uid(record.user)
    if uid is None:
        raise FieldError(f"{record.user} is not a valid user")
    if execute:
        set_owner(path, uid, is_link=is_link)


def _apply_uid(path: Path, record: MetadataRecord, is_link: bool, execute: bool) -> None:
    if execute:
        set_owner(path, record.uid, is_link=is_link)


def _apply_group(path: Path, record: MetadataRecord, is_link: bool, execute: bool) -> None:
    gid = lookup_gid(record.group)
    if gid is None:
        raise FieldError(f"{record.group} is not a valid user group")
    if execute:
        set_group(path, gid, is_link=is_link)


def _apply_gid(path: Path, record: MetadataRecord, is_link: bool, execute: bool) -> None:
    if execute:
        set_group(path, record.gid, is_link=is_link)


def _apply_mode(path: Path, record: MetadataRecord, is_link: bool, execute: bool) -> None:
    if execute:
        set_mode(path, record.mode)


def _apply_mtime(path: Path, record: MetadataRecord, is_link: bool, execute: bool) -> None:
    if execute:
        set_times(path, mtime=record.mtime, is_link=is_link)


def _apply_atime(path: Path, record: MetadataRecord, is_link: bool, execute: bool) -> None:
    if execute:
        set_times(path, atime=record.atime, is_link=is_link)


def _octal(mode: int | None) -> str | None:
    return None if mode is None else f"{mode:04o}"


def _utc(timestamp: int | None) -> str | None:
    return None if timestamp is None else timestamp_to_text(timestamp)


def _text(value: object) -> str | None:
    return None if value is None else str(value)


FIELD_APPLIERS: tuple[FieldApplier, ...] = (
    FieldApplier(FIELD_USER, lambda r: r.user, _apply_user, fallback=FIELD_UID),
    FieldApplier(FIELD_UID, lambda r: _text(r.uid), _apply_uid),
    FieldApplier(FIELD_GROUP, lambda r: r.group, _apply_group, fallback=FIELD_GID),
    FieldApplier(FIELD_GID, lambda r: _text(r.gid), _apply_gid),
    FieldApplier(FIELD_MODE, lambda r: _octal(r.mode), _apply_mode, applies_to_links=False),
    FieldApplier(FIELD_MTIME, lambda r: _utc(r.mtime), _apply_mtime),
    FieldApplier(FIELD_ATIME, lambda r: _utc(r.atime), _apply_atime),
)


def write_fields(
    path: Path,
    record: MetadataRecord,
    fields: Iterable[str],
    *,
    execute: bool,
    result: ApplyResult | None = None,
) -> ApplyResult:
    """Restore the requested fields of ``record`` onto ``path``.

    Fields are independent: a failure is logged and the next field is tried.
    When a field with a fallback succeeds, the fallback field is not applied.
    With ``execute`` off nothing is changed and every field counts as applied.
    """
    result = result if result is not None else ApplyResult()
    requested = set(fields)
    satisfied: set[str] = set()
    is_link = path.is_symlink()

    for applier in FIELD_APPLIERS:
        if applier.field not in requested or applier.field in satisfied:
            continue
        if is_link and not applier.applies_to_links:
            continue
        value = applier.describe(record)
        if value is None or value == "":
            continue

        logger.info("`%s' set %s to '%s'", record.path, applier.field, value)
        try:
            applier.apply(path, record, is_link, execute)
        except FieldError as exc:
            result.warnings += 1
            logger.warning("%s.", exc)
            continue
        except OSError as exc:
            result.warnings += 1
            logger.warning(
                "`%s' cannot set %s to '%s': %s", record.path, applier.field, value, exc
            )
            continue

        result.fields_applied += 1
        if applier.fallback is not None:
            satisfied.add(applier.fallback)
    return result


def rebuild_symlink(path: Path, staging: Path) -> bool:
    """Turn a plain file holding a link target back into a symbolic link.

    On any failure the original file is put back untouched.
    """
    try:
        with path.open("r", encoding=SNAPSHOT_ENCODING, errors=SNAPSHOT_ERRORS) as fh:
            target = fh.readline().rstrip("\n")
    except OSError as exc:
        logger.debug("Unable to read link target from %s: %s", path, exc)
        return False
    if not target:
        return False

    try:
        os.rename(path, staging)
    except OSError as exc:
        logger.debug("Unable to move %s aside: %s", path, exc)
        return False

    try:
        os.symlink(target, path)
        if not path.is_symlink():
            raise OSError(f"{path} is not a symlink after rebuild")
    except OSError as exc:
        logger.debug("Symlink rebuild of %s failed: %s", path, exc)
        if os.path.lexists(path):
            path.unlink()
        os.rename(staging, path)
        return False

    staging.unlink(missing_ok=True)
    return True


def _aside_path(path: Path) -> Path:
    return path.with_name(f"{path.name}.tmp{time.time_ns()}")


def _check_type(
    config: StoreMetaConfig,
    record: MetadataRecord,
    path: Path,
    result: ApplyResult,
) -> bool:
    actual = file_type(path)
    if record.type is FileType.FILE:
        if actual is not FileType.FILE:
            result.warnings += 1
            logger.warning("`%s' is not a file, skip applying metadata", record.path)
            return False
        return True

    if record.type is FileType.DIRECTORY:
        if actual is not FileType.DIRECTORY:
            result.warnings += 1
            logger.warning("`%s' is not a directory, skip applying metadata", record.path)
            return False
        return config.directory

    if actual is FileType.SYMLINK:
        return True
    if actual is not FileType.FILE:
        result.warnings += 1
        logger.warning("`%s' is not a symlink, skip applying metadata", record.path)
        return False

    logger.info("`%s' is being rebuilt to a symlink.", record.path)
    if not config.dry_run:
        if rebuild_symlink(path, _aside_path(path)):
            result.rebuilt += 1
        else:
            result.warnings += 1
            logger.warning("`%s' cannot be rebuilt to a symlink", record.path)
    return True


def apply(config: StoreMetaConfig, fields: Iterable[str] | None = None) -> ApplyResult:
    """Restore the metadata recorded in the snapshot onto the working tree."""
    header = read_snapshot_header(config.snapshot_path)
    check_schema(header)
    requested = tuple(fields) if fields is not None else config.fields
    execute = not config.dry_run
    result = ApplyResult()

    with config.snapshot_path.open("r", encoding=SNAPSHOT_ENCODING, errors=SNAPSHOT_ERRORS) as fh:
        fh.readline()
        fh.readline()
        for line in fh:
            line = line.rstrip("\r\n")
            if not line.strip():
                continue
            try:
                record = decode_record(line, header.fields)
            except ValueError as exc:
                result.warnings += 1
                logger.warning("Unreadable record %r, skip applying metadata: %s", line, exc)
                result.skipped += 1
                continue

            path = config.resolve(record.path)
            if not os.path.lexists(path):
                result.warnings += 1
                logger.warning("`%s' does not exist, skip applying metadata", record.path)
                result.skipped += 1
                continue
            if not _check_type(config, record, path, result):
                result.skipped += 1
                continue

            result.processed += 1
            write_fields(path, record, requested, execute=execute, result=result)

    return result
