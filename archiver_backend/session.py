"""Per-session state: status tracking, file ingestion/removal and build control.

Locking: each SessionState owns one condition variable guarding its status
fields and the count of in-flight writers. It is only held for those short
updates; copying uploads and writing archives happen outside it.
"""
from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Any, BinaryIO, Callable, Optional

from .archive import build_archive
from .config import COPY_CHUNK_BYTES, FILE_MODE, MAX_UPLOAD_BYTES
from .copier import copy_to_file
from .errors import (
    InvalidSize,
    IOFailure,
    NotFound,
    PayloadTooLarge,
    StateConflict,
    Unavailable,
)
from .security import normalize_filename, safe_join


logger = logging.getLogger(__name__)

Submit = Callable[[Callable[[], None]], Any]


class SessionStatus(IntEnum):
    WAITING = 0
    RUNNING = 1
    FINISHED = 2
    FAILED = 3


# Statuses in which the directory may be changed and a build may start.
_IDLE = (SessionStatus.WAITING, SessionStatus.FAILED)


@dataclass(frozen=True)
class StatusSnapshot:
    code: SessionStatus
    progress: int
    error: Optional[str] = None


class SessionState:
    def __init__(
        self,
        session_id: str,
        directory: Path,
        archive_path: Path,
        submit: Submit,
        max_upload_bytes: int = MAX_UPLOAD_BYTES,
        chunk_size: int = COPY_CHUNK_BYTES,
    ) -> None:
        self.session_id = session_id
        self.directory = directory
        self._archive_target = archive_path
        self._submit = submit
        self._max_upload_bytes = max_upload_bytes
        self._chunk_size = chunk_size

        self._cond = threading.Condition()
        self._code = SessionStatus.WAITING
        self._progress = 0
        self._archive_path: Optional[Path] = None
        self._error: Optional[str] = None
        self._writers = 0

    def __repr__(self) -> str:
        return f"SessionState(session_id={self.session_id!r}, status={self._code.name})"

    # Internal helpers (callers hold self._cond unless noted)
    def _snapshot(self) -> StatusSnapshot:
        return StatusSnapshot(code=self._code, progress=self._progress, error=self._error)

    def _require_idle(self, action: str) -> None:
        if self._code not in _IDLE:
            raise StateConflict(
                f"Cannot {action} while archive is {self._code.name.lower()}",
                {"session_id": self.session_id, "status": int(self._code)},
            )

    def _begin_write(self, action: str) -> None:
        with self._cond:
            self._require_idle(action)
            self._writers += 1

    def _end_write(self) -> None:
        with self._cond:
            self._writers -= 1
            self._cond.notify_all()

    def _set_progress(self, value: int) -> None:
        with self._cond:
            if self._code is SessionStatus.RUNNING and value > self._progress:
                self._progress = value
                self._cond.notify_all()

    def _fail(self, message: str) -> None:
        with self._cond:
            self._code = SessionStatus.FAILED
            self._error = message
            self._archive_path = None
            self._cond.notify_all()

    # Directory operations
    def ingest(self, filename: str, size_bytes: int, source: BinaryIO) -> str:
        """Store ``source`` as ``filename`` in the session directory.

        Re-uploading a name overwrites the previous file. Returns the stored name.
        """
        name = normalize_filename(filename)
        dest = safe_join(self.directory, name)
        if size_bytes < 0:
            raise InvalidSize("File size must not be negative", {"size": size_bytes})

        with self._cond:
            self._require_idle("upload")
            if size_bytes > self._max_upload_bytes:
                raise PayloadTooLarge(
                    f"File size is bigger than {self._max_upload_bytes} bytes",
                    {"size": size_bytes, "limit": self._max_upload_bytes},
                )
            self._writers += 1

        try:
            opened = False
            try:
                with open(dest, "wb") as fh:
                    opened = True
                    written = copy_to_file(source, size_bytes, fh, self._chunk_size)
                os.chmod(dest, FILE_MODE)
            except OSError as e:
                if opened:
                    try:
                        dest.unlink(missing_ok=True)
                    except OSError:
                        logger.warning("Could not remove partial upload %s", dest)
                raise IOFailure(f"Failed to store {name}", {"filename": name}) from e
        finally:
            self._end_write()

        logger.info("Stored %s (%d bytes) in session %s", name, written, self.session_id)
        return name

    def remove(self, filename: str) -> None:
        name = normalize_filename(filename)
        path = safe_join(self.directory, name)

        self._begin_write("delete files")
        try:
            if not path.is_file():
                raise NotFound("File does not exist", {"filename": name})
            try:
                path.unlink()
            except FileNotFoundError as e:
                raise NotFound("File does not exist", {"filename": name}) from e
            except OSError as e:
                raise IOFailure(f"Failed to delete {name}", {"filename": name}) from e
        finally:
            self._end_write()

        logger.info("Removed %s from session %s", name, self.session_id)

    def list_files(self) -> list[str]:
        try:
            with os.scandir(self.directory) as it:
                names = [e.name for e in it if e.is_file(follow_symlinks=False)]
        except OSError as e:
            raise IOFailure("Failed to list session files", {"session_id": self.session_id}) from e
        return sorted(names)

    # Build control
    def trigger_build(self) -> StatusSnapshot:
        """Start packaging the session's files unless a build already ran.

        Returns immediately with the resulting status. A session that is
        RUNNING or FINISHED is left alone; a FAILED one is retried.
        """
        with self._cond:
            if self._code not in _IDLE:
                return self._snapshot()
            self._code = SessionStatus.RUNNING
            self._progress = 0
            self._error = None
            self._archive_path = None
            self._cond.notify_all()
            snapshot = self._snapshot()

        try:
            self._submit(self._run_build)
        except RuntimeError as e:
            # Executor already shut down.
            logger.error("Could not schedule build for session %s: %s", self.session_id, e)
            self._fail("Build could not be scheduled")
            return self.status_of()

        logger.info("Build started for session %s", self.session_id)
        return snapshot

    def _run_build(self) -> None:
        with self._cond:
            # Uploads admitted before the trigger must land before we list the directory.
            while self._writers > 0:
                self._cond.wait()

        try:
            built = build_archive(self.directory, self._archive_target, self._set_progress)
        except Exception as e:
            logger.exception("Build failed for session %s", self.session_id)
            self._fail(str(e) or e.__class__.__name__)
            return

        with self._cond:
            self._code = SessionStatus.FINISHED
            self._progress = 100
            self._archive_path = built.path
            self._cond.notify_all()
        logger.info(
            "Build finished for session %s (%d files)", self.session_id, len(built.entries)
        )

    def status_of(self) -> StatusSnapshot:
        with self._cond:
            return self._snapshot()

    def archive_path_of(self) -> Path:
        with self._cond:
            if self._code is not SessionStatus.FINISHED or self._archive_path is None:
                raise Unavailable("Archive is not ready", {"session_id": self.session_id})
            return self._archive_path

    def reset_after_download(self) -> None:
        """Return a FINISHED session to WAITING. Files on disk are kept."""
        with self._cond:
            if self._code is not SessionStatus.FINISHED:
                raise StateConflict(
                    "Archive has not been built",
                    {"session_id": self.session_id, "status": int(self._code)},
                )
            self._reset()
        logger.info("Session %s reset after download", self.session_id)

    def claim_archive(self) -> Path:
        """Hand out the finished archive once and reset the session in the same step.

        Concurrent callers race on the lock: exactly one gets the path, the
        rest see ``Unavailable``. The file stays on disk, and a later build
        replaces it with ``os.replace``, so a reader already holding it keeps
        its copy.
        """
        with self._cond:
            if self._code is not SessionStatus.FINISHED or self._archive_path is None:
                raise Unavailable("Archive is not ready", {"session_id": self.session_id})
            path = self._archive_path
            self._reset()
        logger.info("Session %s archive claimed for download", self.session_id)
        return path

    def _reset(self) -> None:
        self._code = SessionStatus.WAITING
        self._progress = 0
        self._archive_path = None
        self._error = None
        self._cond.notify_all()

    def wait(self, timeout: Optional[float] = None) -> StatusSnapshot:
        """Block until no build is running (or ``timeout`` expires)."""
        with self._cond:
            self._cond.wait_for(lambda: self._code is not SessionStatus.RUNNING, timeout)
            return self._snapshot()
