from __future__ import annotations

import grp
import os
import pwd
import stat
import subprocess
from pathlib import Path

from gitstoremeta.codec import timestamp_to_text
from gitstoremeta.models import FileType, MetadataRecord


def file_type(path: Path) -> FileType | None:
    """Return the type of ``path`` itself (links are not followed)."""
    try:
        mode = path.lstat().st_mode
    except (FileNotFoundError, NotADirectoryError):
        return None
    return _type_from_mode(mode)


def _type_from_mode(mode: int) -> FileType | None:
    if stat.S_ISLNK(mode):
        return FileType.SYMLINK
    if stat.S_ISREG(mode):
        return FileType.FILE
    if stat.S_ISDIR(mode):
        return FileType.DIRECTORY
    return None


def user_name(uid: int) -> str | None:
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError:
        return None


def group_name(gid: int) -> str | None:
    try:
        return grp.getgrgid(gid).gr_name
    except KeyError:
        return None


def lookup_uid(name: str) -> int | None:
    try:
        return pwd.getpwnam(name).pw_uid
    except KeyError:
        return None


def lookup_gid(name: str) -> int | None:
    try:
        return grp.getgrnam(name).gr_gid
    except KeyError:
        return None


def read_metadata(path: Path, rel_path: str) -> MetadataRecord | None:
    try:
        st = path.lstat()
    except (FileNotFoundError, NotADirectoryError):
        return None
    kind = _type_from_mode(st.st_mode)
    if kind is None:
        return None

    return MetadataRecord(
        path=rel_path,
        type=kind,
        mtime=st.st_mtime_ns // 1_000_000_000,
        atime=st.st_atime_ns // 1_000_000_000,
        mode=stat.S_IMODE(st.st_mode),
        uid=st.st_uid,
        gid=st.st_gid,
        user=user_name(st.st_uid),
        group=group_name(st.st_gid),
    )


def _run_tool(*args: str) -> None:
    try:
        result = subprocess.run(list(args), capture_output=True, text=True, check=False)
    except FileNotFoundError as exc:
        raise OSError(f"{args[0]} is not available: {exc}") from exc
    if result.returncode != 0:
        detail = result.stderr.strip() or f"exit {result.returncode}"
        raise OSError(f"{args[0]} failed: {detail}")


def _link_arg(path: Path) -> str:
    # Keep relative paths from being read as options by the external tools.
    return str(path) if path.is_absolute() else f"./{path}"


def set_owner(path: Path, uid: int, *, is_link: bool) -> None:
    if not is_link:
        os.chown(path, uid, -1)
    elif hasattr(os, "lchown"):
        os.lchown(path, uid, -1)
    else:
        _run_tool("chown", "-h", str(uid), _link_arg(path))


def set_group(path: Path, gid: int, *, is_link: bool) -> None:
    if not is_link:
        os.chown(path, -1, gid)
    elif hasattr(os, "lchown"):
        os.lchown(path, -1, gid)
    else:
        _run_tool("chgrp", "-h", str(gid), _link_arg(path))


def set_mode(path: Path, mode: int) -> None:
    os.chmod(path, mode & 0o7777)


def set_times(
    path: Path,
    *,
    mtime: int | None = None,
    atime: int | None = None,
    is_link: bool,
) -> None:
    """Set one or both timestamps, keeping the current value of the other."""
    current = path.lstat()
    new_atime = current.st_atime if atime is None else atime
    new_mtime = current.st_mtime if mtime is None else mtime

    if not is_link:
        os.utime(path, (new_atime, new_mtime))
        return
    if os.utime in os.supports_follow_symlinks:
        os.utime(path, (new_atime, new_mtime), follow_symlinks=False)
        return

    if mtime is not None:
        _run_tool("touch", "-h", "-c", "-m", "-d", timestamp_to_text(mtime), _link_arg(path))
    if atime is not None:
        _run_tool("touch", "-h", "-c", "-a", "-d", timestamp_to_text(atime), _link_arg(path))
