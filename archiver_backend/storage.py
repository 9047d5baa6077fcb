from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional

from .archive import archive_path_for
from .config import (
    BUILD_WORKERS,
    COPY_CHUNK_BYTES,
    DIR_MODE,
    MAX_UPLOAD_BYTES,
    STORAGE_ROOT,
)
from .errors import IOFailure
from .security import normalize_session_id
from .session import SessionState


logger = logging.getLogger(__name__)


class Storage:
    """Process-wide table of sessions under one storage root.

    Entries are created on first reference and live as long as the process.
    The registry lock only guards the mapping; sessions lock themselves.
    """

    def __init__(
        self,
        root: Path | str = STORAGE_ROOT,
        max_upload_bytes: int = MAX_UPLOAD_BYTES,
        chunk_size: int = COPY_CHUNK_BYTES,
        build_workers: int = BUILD_WORKERS,
    ) -> None:
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        os.chmod(self.root, DIR_MODE)

        self._max_upload_bytes = max_upload_bytes
        self._chunk_size = chunk_size
        self._sessions: dict[str, SessionState] = {}
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, build_workers), thread_name_prefix="archive-build"
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()

    def session(self, session_id: str) -> SessionState:
        """Return the session for ``session_id``, creating it and its directory if new."""
        sid = normalize_session_id(session_id)
        with self._lock:
            state = self._sessions.get(sid)
            if state is not None:
                return state

            directory = self.root / sid
            try:
                directory.mkdir(exist_ok=True)
                os.chmod(directory, DIR_MODE)
            except OSError as e:
                raise IOFailure("Failed to create session directory", {"session_id": sid}) from e

            state = SessionState(
                session_id=sid,
                directory=directory,
                archive_path=archive_path_for(self.root, sid),
                submit=self._executor.submit,
                max_upload_bytes=self._max_upload_bytes,
                chunk_size=self._chunk_size,
            )
            self._sessions[sid] = state
        logger.info("Session %s created", sid)
        return state

    @property
    def max_upload_bytes(self) -> int:
        return self._max_upload_bytes

    def get(self, session_id: str) -> Optional[SessionState]:
        sid = normalize_session_id(session_id)
        with self._lock:
            return self._sessions.get(sid)

    def session_ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting builds; with ``wait`` block until running ones finish."""
        self._executor.shutdown(wait=wait)
