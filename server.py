from __future__ import annotations

import logging
import os
import sys
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse
from pydantic import BaseModel

from archiver_backend.config import LOG_LEVEL, MULTIPART_OVERHEAD_BYTES
from archiver_backend.errors import (
    ArchiverError,
    InvalidName,
    InvalidSize,
    IOFailure,
    NotFound,
    PayloadTooLarge,
    StateConflict,
    Unavailable,
)
from archiver_backend.session import SessionState, StatusSnapshot
from archiver_backend.storage import Storage


# Package-wide logger so session/build logs show up next to uvicorn's.
logger = logging.getLogger("archiver_backend")
if not logger.handlers:
    _handler = logging.StreamHandler(sys.stdout)
    _handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    logger.addHandler(_handler)
logger.setLevel(LOG_LEVEL)


_HTTP_STATUS: list[tuple[type[ArchiverError], int]] = [
    (InvalidName, 400),
    (InvalidSize, 400),
    (NotFound, 404),
    (StateConflict, 409),
    (Unavailable, 409),
    (PayloadTooLarge, 413),
    (IOFailure, 500),
]


class StatusResponse(BaseModel):
    code: int
    progress: int
    error: Optional[str] = None


class FilesResponse(BaseModel):
    files: list[str]


def _status_response(snapshot: StatusSnapshot) -> StatusResponse:
    return StatusResponse(code=int(snapshot.code), progress=snapshot.progress, error=snapshot.error)


def _session(request: Request, session_id: str) -> SessionState:
    storage: Storage = request.app.state.storage
    return storage.session(session_id)


def _upload_size(file: UploadFile) -> int:
    size = getattr(file, "size", None)
    if size is not None:
        return size
    # Older Starlette releases do not record the size; measure the spooled file.
    stream = file.file
    pos = stream.tell()
    stream.seek(0, os.SEEK_END)
    end = stream.tell()
    stream.seek(pos)
    return end - pos


def _error_response(exc: ArchiverError) -> JSONResponse:
    status = next((code for cls, code in _HTTP_STATUS if isinstance(exc, cls)), 500)
    return JSONResponse({"detail": exc.message, "code": exc.code}, status_code=status)


def create_app(storage: Optional[Storage] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.storage = storage if storage is not None else Storage()
        logger.info("Storing sessions under %s", app.state.storage.root)
        try:
            yield
        finally:
            app.state.storage.shutdown(wait=True)

    app = FastAPI(lifespan=lifespan)

    @app.middleware("http")
    async def _limit_upload_body(request: Request, call_next):
        # Refuse oversized uploads from the header alone; the multipart parser
        # would otherwise spool the whole body to disk before ingest sees it.
        if request.method == "POST" and request.url.path.startswith("/upload/"):
            raw = request.headers.get("content-length")
            if raw is not None:
                limit = request.app.state.storage.max_upload_bytes
                try:
                    length = int(raw)
                except ValueError:
                    return _error_response(InvalidSize("Invalid Content-Length", {"content_length": raw}))
                if length > limit + MULTIPART_OVERHEAD_BYTES:
                    return _error_response(
                        PayloadTooLarge(
                            f"File size is bigger than {limit} bytes",
                            {"content_length": length, "limit": limit},
                        )
                    )
        return await call_next(request)

    # The upload page is usually served from another origin (or file://).
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ArchiverError)
    async def _archiver_error(request: Request, exc: ArchiverError) -> JSONResponse:
        response = _error_response(exc)
        if response.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
        return response

    @app.get("/begin", response_class=PlainTextResponse)
    def begin() -> str:
        return str(uuid.uuid4())

    @app.post("/upload/{session_id}", response_class=PlainTextResponse)
    def upload(session_id: str, request: Request, file: UploadFile = File(...)) -> str:
        state = _session(request, session_id)
        if not file.filename:
            raise HTTPException(status_code=400, detail="File name is empty")
        state.ingest(file.filename, _upload_size(file), file.file)
        return "Successfully uploaded"

    @app.get("/delete/{session_id}/{filename}")
    def delete(session_id: str, filename: str, request: Request) -> JSONResponse:
        state = _session(request, session_id)
        state.remove(filename)
        return JSONResponse({"ok": True})

    @app.get("/files/{session_id}", response_model=FilesResponse)
    def files(session_id: str, request: Request) -> FilesResponse:
        state = _session(request, session_id)
        return FilesResponse(files=state.list_files())

    @app.get("/zip/{session_id}", response_model=StatusResponse, response_model_exclude_none=True)
    def zip_session(session_id: str, request: Request) -> StatusResponse:
        """Start the archive build if the session is idle, then report its status.

        Clients poll this route until ``code`` reaches 2 (finished) or 3 (failed).
        """
        state = _session(request, session_id)
        return _status_response(state.trigger_build())

    @app.get("/status/{session_id}", response_model=StatusResponse, response_model_exclude_none=True)
    def status(session_id: str, request: Request) -> StatusResponse:
        state = _session(request, session_id)
        return _status_response(state.status_of())

    @app.get("/download/{session_id}")
    def download(session_id: str, request: Request) -> FileResponse:
        state = _session(request, session_id)
        # Claiming resets the session, so a second download gets 409.
        path = state.claim_archive()
        return FileResponse(
            path,
            media_type="application/zip",
            filename=path.name,
            headers={"Cache-Control": "no-store", "X-Content-Type-Options": "nosniff"},
        )

    return app


app = create_app()


if __name__ == "__main__":
    # Convenience: python server.py
    import uvicorn

    port = int(os.environ.get("PORT", "8080"))
    host = os.environ.get("HOST", "0.0.0.0")
    uvicorn.run("server:app", host=host, port=port, reload=False)
