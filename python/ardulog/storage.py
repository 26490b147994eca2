"""DataFlash log file reading and writing.

File format:
  [record 0]
  [record 1]
  ...
  [record N]

Each record is:
  [0xA3][0x95][type id: uint8][payload: length - 3 bytes]

The record length of every type is declared in-band by FMT records
(type 128), FMT itself included. Records follow each other with no
padding, index or checksum.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, BinaryIO

from .schema import (
    FMT_DESCRIPTOR, FMT_ID, FMT_LENGTH, SYNC,
    MessageDescriptor, pack_fmt_payload,
)


class LogReadError(OSError):
    """The raw log could not be opened or read in full."""


def read_log(path: str | Path) -> bytes:
    """Read the whole log file into memory.

    The file is closed before this returns, on success or failure.
    """
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise LogReadError(f"cannot read log {path}: {e}") from e


def build_record(msg_id: int, payload: bytes) -> bytes:
    """Frame a payload as a single record."""
    return bytes((SYNC[0], SYNC[1], msg_id)) + payload


def build_fmt_record(desc: MessageDescriptor, fmt_length: int = FMT_LENGTH) -> bytes:
    """Build the FMT record that declares *desc*."""
    return build_record(FMT_ID, pack_fmt_payload(desc, fmt_length))


# ---------------------------------------------------------------------------
# Writer
# ---------------------------------------------------------------------------

class LogWriter:
    """Writes a DataFlash log.  The FMT self-description is written first."""

    def __init__(self, path: str | Path, fmt_length: int = FMT_LENGTH):
        if fmt_length < FMT_LENGTH:
            raise ValueError(f"FMT records need at least {FMT_LENGTH} bytes")
        self._f: BinaryIO = open(path, "wb")
        self._fmt_length = fmt_length
        self._types: dict[str, MessageDescriptor] = {}
        self.add_type(MessageDescriptor(
            FMT_ID, FMT_DESCRIPTOR.name, fmt_length,
            FMT_DESCRIPTOR.format, list(FMT_DESCRIPTOR.labels),
        ))

    def add_type(self, desc: MessageDescriptor) -> None:
        """Declare a message type by writing its FMT record."""
        self._f.write(build_fmt_record(desc, self._fmt_length))
        self._types[desc.name] = desc

    def write(self, name: str, *values: Any) -> None:
        """Write one record of a previously declared type."""
        desc = self._types.get(name)
        if desc is None:
            raise KeyError(f"message type {name!r} not declared")
        self._f.write(build_record(desc.id, desc.encode(*values)))

    def write_raw(self, data: bytes) -> None:
        """Write bytes as-is (pre-built records or deliberate garbage)."""
        self._f.write(data)

    def flush(self) -> None:
        self._f.flush()

    def close(self) -> None:
        self._f.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
