"""Property-based tests for the update merge."""

from __future__ import annotations

import os

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from gitstoremeta.models import ChangeKind, PendingChange
from gitstoremeta.update import merge_snapshot

PROPERTY_SETTINGS = settings(
    max_examples=250,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
)

_SEGMENT = st.text(alphabet="aAbB-._é", min_size=1, max_size=3)
_PATH = st.builds("/".join, st.lists(_SEGMENT, min_size=1, max_size=3))
_PATHS = st.sets(_PATH, max_size=12)


def _refresh(path: str) -> str:
    return f"{path}\tf\tNEW"


def _expected(
    baseline: set[str],
    deleted: set[str],
    placeholders: set[str],
    modified: set[str],
) -> list[str]:
    lines: list[str] = []
    for path in sorted(baseline | deleted | placeholders | modified, key=os.fsencode):
        if path in deleted and path not in placeholders:
            continue
        if path in modified:
            lines.append(_refresh(path))
        elif path in baseline:
            lines.append(f"{path}\tf\told")
    return lines


class TestMergeProperties:
    @PROPERTY_SETTINGS
    @given(baseline=_PATHS, deleted=_PATHS, placeholders=_PATHS, modified=_PATHS)
    def test_matches_reference_outcome(
        self,
        baseline: set[str],
        deleted: set[str],
        placeholders: set[str],
        modified: set[str],
    ) -> None:
        baseline_lines = [f"{path}\tf\told" for path in sorted(baseline, key=os.fsencode)]
        changes = (
            [PendingChange(path, ChangeKind.MODIFIED) for path in modified]
            + [PendingChange(path, ChangeKind.PLACEHOLDER) for path in placeholders]
            + [PendingChange(path, ChangeKind.DELETED) for path in deleted]
        )
        result = list(
            merge_snapshot(baseline_lines, changes, path_column=0, refresh=_refresh)
        )
        assert result == _expected(baseline, deleted, placeholders, modified)

    @PROPERTY_SETTINGS
    @given(baseline=_PATHS, modified=_PATHS)
    def test_output_is_sorted_and_unique(self, baseline: set[str], modified: set[str]) -> None:
        baseline_lines = [f"{path}\tf\told" for path in baseline]
        changes = [PendingChange(path, ChangeKind.MODIFIED) for path in modified]
        result = list(
            merge_snapshot(baseline_lines, changes, path_column=0, refresh=_refresh)
        )
        paths = [line.split("\t")[0] for line in result]
        assert paths == sorted(set(paths), key=os.fsencode)
        assert set(paths) == baseline | modified

    @PROPERTY_SETTINGS
    @given(baseline=_PATHS)
    def test_no_changes_keeps_baseline(self, baseline: set[str]) -> None:
        baseline_lines = [f"{path}\tf\told" for path in sorted(baseline, key=os.fsencode)]
        result = list(merge_snapshot(baseline_lines, [], path_column=0, refresh=_refresh))
        assert result == baseline_lines
