from __future__ import annotations

import logging
import os
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .config import ARCHIVE_SUFFIX, PARTIAL_SUFFIX
from .errors import InvariantViolation


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuiltArchive:
    path: Path
    entries: tuple[str, ...]


def archive_path_for(root: Path, session_id: str) -> Path:
    return root / f"{session_id}{ARCHIVE_SUFFIX}"


def partial_path_for(archive_path: Path) -> Path:
    return archive_path.with_name(archive_path.name + PARTIAL_SUFFIX)


def compute_progress(done: int, total: int) -> int:
    """Percentage of written entries, floored so only a complete build reports 100."""
    if total <= 0:
        return 100
    done = max(0, min(done, total))
    return done * 100 // total


def list_entries(directory: Path) -> list[Path]:
    """Return the session's files in name order.

    Sessions are flat: a subdirectory (or anything that is not a regular
    file) means something outside the ingest path wrote here.
    """
    entries: list[Path] = []
    with os.scandir(directory) as it:
        for entry in it:
            if entry.is_dir(follow_symlinks=False):
                raise InvariantViolation(
                    "invalid state: inner directory detected", {"entry": entry.name}
                )
            if not entry.is_file(follow_symlinks=False):
                raise InvariantViolation(
                    "invalid state: non-regular file detected", {"entry": entry.name}
                )
            entries.append(Path(entry.path))
    entries.sort(key=lambda p: p.name)
    return entries


def build_archive(
    directory: Path,
    archive_path: Path,
    on_progress: Optional[Callable[[int], None]] = None,
) -> BuiltArchive:
    """Write every file of ``directory`` into a flat zip at ``archive_path``.

    The archive is assembled under a ``.part`` name and moved into place only
    once complete, so a reader of a previous archive at the same path keeps
    its file. ``on_progress`` receives the percentage after each member.
    """
    entries = list_entries(directory)
    total = len(entries)
    partial = partial_path_for(archive_path)

    try:
        with zipfile.ZipFile(
            partial, mode="w", compression=zipfile.ZIP_DEFLATED, strict_timestamps=False
        ) as zf:
            for done, path in enumerate(entries, start=1):
                logger.debug("Archiving %s into %s", path.name, archive_path.name)
                zf.write(path, arcname=path.name)
                if on_progress is not None:
                    on_progress(compute_progress(done, total))
        os.replace(partial, archive_path)
    except BaseException:
        try:
            partial.unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not remove partial archive %s", partial)
        raise

    if on_progress is not None and total == 0:
        on_progress(100)
    return BuiltArchive(path=archive_path, entries=tuple(p.name for p in entries))
