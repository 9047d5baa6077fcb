from __future__ import annotations

from typing import BinaryIO

from .config import COPY_CHUNK_BYTES


def _is_seekable(stream: BinaryIO) -> bool:
    try:
        return bool(stream.seekable())
    except (AttributeError, ValueError):
        return False


def _read_at(src: BinaryIO, base: int | None, offset: int, size: int) -> bytes:
    """Read up to ``size`` bytes at ``offset``.

    Short reads are retried until the chunk is full or the source reports
    end-of-data (an empty read). Non-seekable sources are read sequentially,
    which lands on the same offsets since every chunk is consumed in order.
    """
    if base is not None:
        src.seek(base + offset)
    parts: list[bytes] = []
    remaining = size
    while remaining > 0:
        data = src.read(remaining)
        if not data:
            break
        parts.append(data)
        remaining -= len(data)
    return b"".join(parts)


def copy_to_file(
    src: BinaryIO,
    length: int,
    dst: BinaryIO,
    chunk_size: int = COPY_CHUNK_BYTES,
) -> int:
    """Copy at most ``length`` bytes from ``src`` into ``dst`` chunk by chunk.

    Each chunk is addressed by its offset on both sides, so memory use is
    bounded by ``chunk_size`` regardless of the upload size. Copying stops at
    ``length`` bytes or at end-of-data, whichever comes first.

    Returns the number of bytes written. OSError propagates to the caller.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    base = src.tell() if _is_seekable(src) else None
    offset = 0
    while offset < length:
        data = _read_at(src, base, offset, min(chunk_size, length - offset))
        if not data:
            break
        dst.seek(offset)
        dst.write(data)
        offset += len(data)
    dst.flush()
    return offset
