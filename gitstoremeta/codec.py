from __future__ import annotations

import calendar
import re
import time
from typing import Iterable

from gitstoremeta.errors import MalformedSnapshotError, UnsupportedSchemaError
from gitstoremeta.models import (
    ALL_FIELDS,
    FIELD_ATIME,
    FIELD_FILE,
    FIELD_GID,
    FIELD_GROUP,
    FIELD_MODE,
    FIELD_MTIME,
    FIELD_TYPE,
    FIELD_UID,
    FIELD_USER,
    REQUIRED_FIELDS,
    FileType,
    MetadataRecord,
    SnapshotHeader,
)


HEADER_PREFIX = "# generated by"
APP_NAME = "git-store-meta"
APP_VERSION = "1.0.0"
SUPPORTED_VERSION_RE = re.compile(r"^1\.0\..+$")

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
_TIMESTAMP_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})Z$")
_FIELD_TOKEN_RE = re.compile(r"^<(.*)>$")


def timestamp_to_text(timestamp: int) -> str:
    return time.strftime(TIMESTAMP_FORMAT, time.gmtime(timestamp))


def text_to_timestamp(value: str) -> int:
    match = _TIMESTAMP_RE.match(value)
    if match is None:
        raise ValueError(f"invalid UTC timestamp: {value!r}")
    year, month, day, hour, minute, second = (int(part) for part in match.groups())
    return calendar.timegm((year, month, day, hour, minute, second, 0, 0, 0))


def format_header(fields: Iterable[str], *, app: str = APP_NAME, version: str = APP_VERSION) -> str:
    marker = "\t".join((HEADER_PREFIX, app, version))
    field_line = "\t".join(f"<{field}>" for field in fields)
    return f"{marker}\n{field_line}\n"


def parse_header(first_line: str | None, second_line: str | None) -> SnapshotHeader:
    if not first_line:
        raise MalformedSnapshotError("missing header line")
    parts = first_line.rstrip("\r\n").split("\t")
    if len(parts) < 3 or parts[0] != HEADER_PREFIX:
        raise MalformedSnapshotError(f"unrecognized header: {first_line.rstrip()!r}")
    app, version = parts[1], parts[2]

    if not second_line:
        raise MalformedSnapshotError("missing field list")
    fields: list[str] = []
    for token in second_line.rstrip("\r\n").split("\t"):
        match = _FIELD_TOKEN_RE.match(token)
        if match is None:
            raise MalformedSnapshotError(f"invalid field token: {token!r}")
        name = match.group(1)
        if name not in ALL_FIELDS:
            raise MalformedSnapshotError(f"unknown field: {name!r}")
        if name in fields:
            raise MalformedSnapshotError(f"duplicate field: {name!r}")
        fields.append(name)
    for required in REQUIRED_FIELDS:
        if required not in fields:
            raise MalformedSnapshotError(f"field list lacks <{required}>")

    return SnapshotHeader(app=app, version=version, fields=tuple(fields))


def check_schema(header: SnapshotHeader) -> None:
    if header.app != APP_NAME:
        raise UnsupportedSchemaError(f"snapshot uses another schema: {header.app} {header.version}")
    if not SUPPORTED_VERSION_RE.match(header.version):
        raise UnsupportedSchemaError(
            f"snapshot uses an unsupported schema version: {header.version}"
        )


def _encode_value(record: MetadataRecord, field: str) -> str:
    if field == FIELD_FILE:
        return record.path
    if field == FIELD_TYPE:
        return record.type.value
    if field in (FIELD_MTIME, FIELD_ATIME):
        value = getattr(record, field)
        return "" if value is None else timestamp_to_text(value)
    if field == FIELD_MODE:
        return "" if record.mode is None else f"{record.mode & 0o7777:04o}"
    value = getattr(record, field)
    return "" if value is None else str(value)


def encode_record(record: MetadataRecord, fields: Iterable[str]) -> str:
    values = [_encode_value(record, field) for field in fields]
    for value in values:
        if "\t" in value or "\n" in value:
            raise ValueError(f"value cannot be stored in a tab-delimited line: {value!r}")
    return "\t".join(values)


def decode_record(line: str, fields: tuple[str, ...]) -> MetadataRecord:
    columns = line.rstrip("\r\n").split("\t")
    columns += [""] * (len(fields) - len(columns))
    raw = dict(zip(fields, columns))

    path = raw[FIELD_FILE]
    if not path:
        raise ValueError("record has an empty path")
    record = MetadataRecord(path=path, type=FileType(raw[FIELD_TYPE]))
    if raw.get(FIELD_MTIME):
        record.mtime = text_to_timestamp(raw[FIELD_MTIME])
    if raw.get(FIELD_ATIME):
        record.atime = text_to_timestamp(raw[FIELD_ATIME])
    if raw.get(FIELD_MODE):
        record.mode = int(raw[FIELD_MODE], 8) & 0o7777
    if raw.get(FIELD_UID):
        record.uid = int(raw[FIELD_UID])
    if raw.get(FIELD_GID):
        record.gid = int(raw[FIELD_GID])
    record.user = raw.get(FIELD_USER) or None
    record.group = raw.get(FIELD_GROUP) or None
    return record


def record_path(line: str, path_column: int) -> str:
    columns = line.rstrip("\r\n").split("\t")
    return columns[path_column] if path_column < len(columns) else ""
