"""Shared pytest fixtures for archiver tests."""

import io
import threading

import pytest

from archiver_backend.storage import Storage


@pytest.fixture
def storage(tmp_path):
    """A fresh registry rooted in a temporary directory."""
    store = Storage(tmp_path / "files", max_upload_bytes=64 * 1024, chunk_size=16)
    yield store
    store.shutdown(wait=True)


@pytest.fixture
def session(storage):
    return storage.session("abc")


def upload(state, name, data: bytes):
    """Ingest ``data`` as ``name`` the way the HTTP layer does."""
    return state.ingest(name, len(data), io.BytesIO(data))


class BlockingSubmit:
    """Executor stand-in that holds each build until released.

    Lets tests observe a session while it is RUNNING.
    """

    def __init__(self):
        self.release = threading.Event()
        self.threads = []

    def __call__(self, fn):
        def run():
            self.release.wait(timeout=10)
            fn()

        thread = threading.Thread(target=run, daemon=True)
        self.threads.append(thread)
        thread.start()
        return thread

    def finish(self):
        self.release.set()
        for thread in self.threads:
            thread.join(timeout=10)
