"""Record framing: sync-pattern search and header validation.

A DataFlash log is a back-to-back sequence of fixed-length records:

  [0xA3][0x95][type id][payload ...]

There is no length prefix and no checksum, so record boundaries are
recovered by searching for the sync bytes and then confirming each
candidate against the record length declared for its type: a genuine
record must fit in the buffer and must be followed immediately by the
sync bytes of the next record.
"""

from __future__ import annotations

import numpy as np

from .schema import HEADER_SIZE, SYNC


def as_buffer(data: bytes | np.ndarray) -> np.ndarray:
    """Return a read-only uint8 view over *data*."""
    if isinstance(data, np.ndarray):
        return data
    return np.frombuffer(data, dtype=np.uint8)


def scan_headers(data: bytes | np.ndarray, msg_id: int | None = None,
                 sync: tuple[int, int] = SYNC) -> np.ndarray:
    """Find every offset where the sync bytes (and optionally *msg_id*) occur.

    The result is ascending. Offsets are candidates only: the two sync
    bytes can also occur inside payload data.
    """
    buf = as_buffer(data)
    width = 2 if msg_id is None else 3
    if len(buf) < width:
        return np.empty(0, dtype=np.int64)

    end = len(buf) - width + 1
    mask = (buf[:end] == sync[0]) & (buf[1:end + 1] == sync[1])
    if msg_id is not None:
        mask &= buf[2:end + 2] == msg_id
    return np.flatnonzero(mask).astype(np.int64)


def validate_headers(data: bytes | np.ndarray, candidates: np.ndarray,
                     msg_id: int, length: int,
                     sync: tuple[int, int] = SYNC) -> np.ndarray:
    """Confirm which candidate offsets start a *length*-byte record of *msg_id*."""
    buf = as_buffer(data)
    size = len(buf)
    offsets = np.asarray(candidates, dtype=np.int64)
    if len(offsets) == 0 or length < HEADER_SIZE:
        return np.empty(0, dtype=np.int64)
    assert np.all(np.diff(offsets) > 0), "header candidates must be ascending"

    # The type id byte must exist and match
    offsets = offsets[offsets + 2 < size]
    offsets = offsets[buf[offsets + 2] == msg_id]

    # The whole record must fit; every overflowing offset goes, not just a tail
    offsets = offsets[offsets + length <= size]

    # Each record must be followed directly by the next sync bytes. Bytes
    # past the end of the buffer are not checked: that is the final record.
    for i, sync_byte in enumerate(sync):
        pos = offsets + length + i
        readable = pos < size
        ok = np.ones(len(offsets), dtype=bool)
        ok[readable] = buf[pos[readable]] == sync_byte
        offsets = offsets[ok]

    return _drop_overlaps(offsets, length)


def _drop_overlaps(offsets: np.ndarray, length: int) -> np.ndarray:
    """Drop offsets that start inside the previously accepted record."""
    if len(offsets) < 2 or np.all(np.diff(offsets) >= length):
        return offsets

    keep: list[int] = []
    next_free = -1
    for o in offsets.tolist():
        if o >= next_free:
            keep.append(o)
            next_free = o + length
    return np.asarray(keep, dtype=np.int64)
