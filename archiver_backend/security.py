from __future__ import annotations

import re
from pathlib import Path

from .config import ARCHIVE_SUFFIX, MAX_SESSION_ID_LENGTH, PARTIAL_SUFFIX
from .errors import InvalidName


_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9._-]+$")


def normalize_session_id(session_id: str) -> str:
    """Validate and normalize a session id.

    Ids are opaque to us but become a directory name under the storage root,
    so only a conservative character set is accepted. Ids ending with the
    archive suffix are refused: <root>/<id> must never be another session's
    <root>/<other>-result.zip.
    """
    if not isinstance(session_id, str):
        raise InvalidName("Invalid session id")
    session_id = session_id.strip()
    if not session_id or len(session_id) > MAX_SESSION_ID_LENGTH:
        raise InvalidName("Invalid session id")
    if session_id in (".", "..") or not _SESSION_ID_RE.match(session_id):
        raise InvalidName("Invalid session id", {"session_id": session_id})
    if session_id.endswith((ARCHIVE_SUFFIX, PARTIAL_SUFFIX)):
        raise InvalidName("Invalid session id", {"session_id": session_id})
    return session_id


def is_safe_basename(name: str) -> bool:
    """Allow only simple filenames (no directories)."""
    if not isinstance(name, str) or not name:
        return False
    if name in (".", ".."):
        return False
    if "\x00" in name:
        return False
    if name != Path(name).name:
        return False
    if "/" in name or "\\" in name:
        return False
    return True


def normalize_filename(filename: str) -> str:
    if not is_safe_basename(filename):
        raise InvalidName("Invalid filename", {"filename": str(filename)})
    return filename


def safe_join(base_dir: Path, *parts: str) -> Path:
    """Join paths and ensure the result stays strictly within base_dir.

    This defends against path traversal when writing or deleting user-named files.
    """
    base_dir = base_dir.resolve()
    candidate = base_dir
    for part in parts:
        candidate = candidate / part
    resolved = candidate.resolve()
    if base_dir not in resolved.parents:
        raise InvalidName("Path traversal attempt")
    return resolved
