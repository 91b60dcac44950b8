"""Tests for the snapshot header and record codec."""

from __future__ import annotations

import pytest

from gitstoremeta.codec import (
    check_schema,
    decode_record,
    encode_record,
    format_header,
    parse_header,
    record_path,
    text_to_timestamp,
    timestamp_to_text,
)
from gitstoremeta.errors import MalformedSnapshotError, UnsupportedSchemaError
from gitstoremeta.models import ALL_FIELDS, FileType, MetadataRecord, SnapshotHeader


class TestTimestamps:
    def test_epoch(self) -> None:
        assert timestamp_to_text(0) == "1970-01-01T00:00:00Z"

    def test_known_value(self) -> None:
        assert timestamp_to_text(1433162096) == "2015-06-01T12:34:56Z"
        assert text_to_timestamp("2015-06-01T12:34:56Z") == 1433162096

    def test_round_trip_is_lossless(self) -> None:
        for value in (0, 1, 951782400, 1700000000, 4102444800):
            assert text_to_timestamp(timestamp_to_text(value)) == value

    @pytest.mark.parametrize(
        "value",
        ["2015-06-01 12:34:56", "2015-06-01T12:34:56", "2015-06-01T12:34:56.5Z", ""],
    )
    def test_rejects_non_utc_text(self, value: str) -> None:
        with pytest.raises(ValueError):
            text_to_timestamp(value)


class TestHeader:
    def test_format_header(self) -> None:
        assert format_header(("file", "type", "mtime")) == (
            "# generated by\tgit-store-meta\t1.0.0\n<file>\t<type>\t<mtime>\n"
        )

    def test_parse_formatted_header(self) -> None:
        first, second = format_header(ALL_FIELDS).splitlines(keepends=True)
        header = parse_header(first, second)
        assert header.app == "git-store-meta"
        assert header.version == "1.0.0"
        assert header.fields == ALL_FIELDS
        assert header.path_column == 0

    def test_rejects_missing_header(self) -> None:
        with pytest.raises(MalformedSnapshotError):
            parse_header("", "")

    def test_rejects_wrong_marker(self) -> None:
        with pytest.raises(MalformedSnapshotError):
            parse_header("# made by\tgit-store-meta\t1.0.0\n", "<file>\t<type>\n")

    def test_rejects_short_marker_line(self) -> None:
        with pytest.raises(MalformedSnapshotError):
            parse_header("# generated by\tgit-store-meta\n", "<file>\t<type>\n")

    def test_rejects_missing_field_line(self) -> None:
        with pytest.raises(MalformedSnapshotError):
            parse_header("# generated by\tgit-store-meta\t1.0.0\n", None)

    def test_rejects_field_list_without_type(self) -> None:
        with pytest.raises(MalformedSnapshotError, match="type"):
            parse_header("# generated by\tgit-store-meta\t1.0.0\n", "<file>\t<mtime>\n")

    def test_rejects_unknown_field(self) -> None:
        with pytest.raises(MalformedSnapshotError, match="unknown"):
            parse_header("# generated by\tgit-store-meta\t1.0.0\n", "<file>\t<type>\t<size>\n")

    def test_rejects_unwrapped_field(self) -> None:
        with pytest.raises(MalformedSnapshotError):
            parse_header("# generated by\tgit-store-meta\t1.0.0\n", "<file>\ttype\n")

    def test_accepts_other_app_structurally(self) -> None:
        header = parse_header("# generated by\tother-tool\t3.1\n", "<type>\t<file>\n")
        assert header.app == "other-tool"
        assert header.path_column == 1


class TestSchema:
    @pytest.mark.parametrize("version", ["1.0.0", "1.0.1", "1.0.12-beta"])
    def test_accepts_1_0_x(self, version: str) -> None:
        check_schema(SnapshotHeader("git-store-meta", version, ("file", "type")))

    @pytest.mark.parametrize("version", ["2.0.0", "1.1.0", "1.0", "1.0."])
    def test_rejects_other_versions(self, version: str) -> None:
        with pytest.raises(UnsupportedSchemaError):
            check_schema(SnapshotHeader("git-store-meta", version, ("file", "type")))

    def test_rejects_other_application(self) -> None:
        with pytest.raises(UnsupportedSchemaError, match="another schema"):
            check_schema(SnapshotHeader("other-tool", "1.0.0", ("file", "type")))


class TestRecords:
    def _record(self) -> MetadataRecord:
        return MetadataRecord(
            path="dir/file.txt",
            type=FileType.FILE,
            mtime=1433162096,
            atime=0,
            mode=0o4755,
            uid=1000,
            gid=100,
            user="alice",
            group=None,
        )

    def test_encode_in_field_order(self) -> None:
        line = encode_record(self._record(), ("file", "type", "mode", "mtime", "user", "group"))
        assert line == "dir/file.txt\tf\t4755\t2015-06-01T12:34:56Z\talice\t"

    def test_mode_is_four_octal_digits(self) -> None:
        record = self._record()
        record.mode = 0o644
        assert encode_record(record, ("file", "type", "mode")) == "dir/file.txt\tf\t0644"

    def test_encode_rejects_tab_in_path(self) -> None:
        record = self._record()
        record.path = "bad\tname"
        with pytest.raises(ValueError):
            encode_record(record, ("file", "type"))

    def test_decode_matches_encode(self) -> None:
        record = self._record()
        line = encode_record(record, ALL_FIELDS)
        assert decode_record(line, ALL_FIELDS) == record

    def test_decode_pads_missing_trailing_columns(self) -> None:
        record = decode_record("a.txt\tl", ("file", "type", "mtime", "user"))
        assert record.type is FileType.SYMLINK
        assert record.mtime is None
        assert record.user is None

    def test_decode_rejects_unknown_type(self) -> None:
        with pytest.raises(ValueError):
            decode_record("a.txt\tp", ("file", "type"))

    def test_decode_rejects_bad_mode(self) -> None:
        with pytest.raises(ValueError):
            decode_record("a.txt\tf\t0x9", ("file", "type", "mode"))

    def test_record_path_uses_declared_column(self) -> None:
        assert record_path("f\tsome/path\t0644\n", 1) == "some/path"
