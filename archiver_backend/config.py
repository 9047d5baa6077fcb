from __future__ import annotations

import os
from pathlib import Path


# Root directory holding one subdirectory per session plus the built archives.
# Default: project-local ./files, matching the layout clients expect.
# Override with env var ARCHIVER_STORAGE_ROOT.
_root_raw = os.environ.get("ARCHIVER_STORAGE_ROOT")
if _root_raw and _root_raw.strip():
    STORAGE_ROOT = Path(_root_raw)
else:
    # archiver_backend/ -> project root
    STORAGE_ROOT = Path(__file__).resolve().parent.parent / "files"
STORAGE_ROOT = STORAGE_ROOT.resolve()

# Upload ceiling per file.
MAX_UPLOAD_BYTES = int(os.environ.get("ARCHIVER_MAX_UPLOAD_BYTES", str(1024 * 1024 * 1024)))  # 1GB

# Size of each offset-addressed read/write while copying an upload to disk.
COPY_CHUNK_BYTES = int(os.environ.get("ARCHIVER_COPY_CHUNK_BYTES", "1024"))

# Archive builds run on a shared thread pool of this size.
BUILD_WORKERS = int(os.environ.get("ARCHIVER_BUILD_WORKERS", "4"))

LOG_LEVEL = os.environ.get("ARCHIVER_LOG_LEVEL", "INFO").upper()

# <root>/<session_id>-result.zip once a build finishes; written under
# <root>/<session_id>-result.zip.part while it runs.
ARCHIVE_SUFFIX = "-result.zip"
PARTIAL_SUFFIX = ".part"

MAX_SESSION_ID_LENGTH = 128

DIR_MODE = 0o755
FILE_MODE = 0o644

# Headroom for multipart boundaries and part headers when an upload request's
# Content-Length is compared against MAX_UPLOAD_BYTES.
MULTIPART_OVERHEAD_BYTES = int(os.environ.get("ARCHIVER_MULTIPART_OVERHEAD_BYTES", str(64 * 1024)))
