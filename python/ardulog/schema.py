"""Message descriptors, FMT record codec and fixed-width field decoding."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Iterator

# Wire format constants (DataFlash log)
SYNC = (0xA3, 0x95)
HEADER_SIZE = 3  # sync bytes + type id
FMT_ID = 128
FMT_LENGTH = 89

# FMT payload: type, length, name[4], format[16], labels[64]
FMT_PAYLOAD_FMT = "<BB4s16s64s"
FMT_PAYLOAD_SIZE = struct.calcsize(FMT_PAYLOAD_FMT)  # 86

NAME_MAX = 4
FORMAT_MAX = 16
LABELS_MAX = 64


# format code -> (struct code, scale); scale applies to decoded integers
_CODE_FMT: dict[str, tuple[str, float | None]] = {
    "b": ("b", None),
    "B": ("B", None),
    "h": ("h", None),
    "H": ("H", None),
    "i": ("i", None),
    "I": ("I", None),
    "q": ("q", None),
    "Q": ("Q", None),
    "f": ("f", None),
    "d": ("d", None),
    "n": ("4s", None),
    "N": ("16s", None),
    "Z": ("64s", None),
    "c": ("h", 0.01),
    "C": ("H", 0.01),
    "e": ("i", 0.01),
    "E": ("I", 0.01),
    "L": ("i", 1e-7),
    "M": ("B", None),
    "a": ("32h", None),
}

# numpy dtypes for decoded columns, by format code
CODE_DTYPE: dict[str, str] = {
    "b": "i1", "B": "u1", "h": "i2", "H": "u2", "i": "i4", "I": "u4",
    "q": "i8", "Q": "u8", "f": "f4", "d": "f8", "M": "u1", "a": "i2",
    "c": "f8", "C": "f8", "e": "f8", "E": "f8", "L": "f8",
    "n": "U4", "N": "U16", "Z": "U64",
}


@dataclass
class FieldDef:
    name: str
    code: str
    offset: int
    size: int
    struct_fmt: str
    scale: float | None = None

    @property
    def is_string(self) -> bool:
        return self.struct_fmt.endswith("s")

    @property
    def is_array(self) -> bool:
        return self.code == "a"


def _unpack_str(raw: bytes) -> str:
    """Decode a NUL-padded fixed-size string field."""
    return raw.rstrip(b"\x00").decode("ascii", errors="replace")


def _pack_str(s: str, size: int) -> bytes:
    """Encode a string into a fixed-size NUL-padded field."""
    return s.encode("ascii")[:size].ljust(size, b"\x00")


@dataclass
class MessageDescriptor:
    """Schema entry for one message type, as declared by a FMT record.

    ``length`` counts the whole record, including the two sync bytes and
    the type id.
    """

    id: int
    name: str
    length: int
    format: str
    labels: list[str] = field(default_factory=list)

    @property
    def payload_size(self) -> int:
        return self.length - HEADER_SIZE

    @cached_property
    def fields(self) -> list[FieldDef]:
        """Field layout derived from the format string.

        Raises ValueError if the format cannot describe this message.
        """
        if len(self.labels) != len(self.format):
            raise ValueError(
                f"{self.name}: {len(self.format)} format codes but "
                f"{len(self.labels)} labels")

        fields: list[FieldDef] = []
        offset = 0
        for code, label in zip(self.format, self.labels):
            if code not in _CODE_FMT:
                raise ValueError(f"{self.name}: unknown format code {code!r}")
            struct_fmt, scale = _CODE_FMT[code]
            size = struct.calcsize("<" + struct_fmt)
            fields.append(FieldDef(label, code, offset, size, struct_fmt, scale))
            offset += size

        if offset > self.payload_size:
            raise ValueError(
                f"{self.name}: fields need {offset} bytes, "
                f"payload is {self.payload_size}")
        return fields

    def decode(self, payload: bytes) -> dict[str, Any]:
        """Decode one payload into a dict of label -> value."""
        result: dict[str, Any] = {}
        for f in self.fields:
            values = struct.unpack_from("<" + f.struct_fmt, payload, f.offset)
            if f.is_string:
                result[f.name] = _unpack_str(values[0])
            elif f.is_array:
                result[f.name] = list(values)
            elif f.scale is not None:
                result[f.name] = values[0] * f.scale
            else:
                result[f.name] = values[0]
        return result

    def encode(self, *values: Any) -> bytes:
        """Pack one value per field into a payload of ``payload_size`` bytes."""
        fields = self.fields
        if len(values) != len(fields):
            raise ValueError(
                f"{self.name}: expected {len(fields)} values, got {len(values)}")

        buf = bytearray(self.payload_size)
        for f, value in zip(fields, values):
            fmt = "<" + f.struct_fmt
            if f.is_string:
                struct.pack_into(fmt, buf, f.offset, _pack_str(value, f.size))
            elif f.is_array:
                struct.pack_into(fmt, buf, f.offset, *value)
            elif f.scale is not None:
                struct.pack_into(fmt, buf, f.offset, int(round(value / f.scale)))
            else:
                struct.pack_into(fmt, buf, f.offset, value)
        return bytes(buf)


# Layout of the FMT message itself, used when a log never declares it
FMT_DESCRIPTOR = MessageDescriptor(
    FMT_ID, "FMT", FMT_LENGTH, "BBnNZ",
    ["Type", "Length", "Name", "Format", "Columns"],
)


def unpack_fmt_payload(payload: bytes) -> MessageDescriptor:
    """Decode a FMT record payload into the descriptor it declares."""
    msg_id, length, name_raw, fmt_raw, labels_raw = \
        struct.unpack_from(FMT_PAYLOAD_FMT, payload, 0)
    labels = _unpack_str(labels_raw)
    return MessageDescriptor(
        id=msg_id,
        name=_unpack_str(name_raw),
        length=length,
        format=_unpack_str(fmt_raw),
        labels=labels.split(",") if labels else [],
    )


def pack_fmt_payload(desc: MessageDescriptor, fmt_length: int = FMT_LENGTH) -> bytes:
    """Encode a descriptor as a FMT payload for a FMT record of ``fmt_length``."""
    payload = struct.pack(
        FMT_PAYLOAD_FMT,
        desc.id, desc.length,
        _pack_str(desc.name, NAME_MAX),
        _pack_str(desc.format, FORMAT_MAX),
        _pack_str(",".join(desc.labels), LABELS_MAX),
    )
    return payload.ljust(fmt_length - HEADER_SIZE, b"\x00")


class FormatRegistry:
    """Descriptors discovered from the FMT stream.

    Every declaration is kept in ``declarations`` in stream order. Lookup
    by id or name resolves to the most recent declaration.
    """

    def __init__(self, descriptors: list[MessageDescriptor] | None = None):
        self.declarations: list[MessageDescriptor] = []
        self._by_id: dict[int, MessageDescriptor] = {}
        self._by_name: dict[str, MessageDescriptor] = {}
        for d in descriptors or []:
            self.register(d)

    def register(self, desc: MessageDescriptor) -> MessageDescriptor | None:
        """Add a declaration; return the descriptor it replaces, if any."""
        self.declarations.append(desc)
        previous = self._by_id.get(desc.id)
        if previous is not None and self._by_name.get(previous.name) is previous:
            del self._by_name[previous.name]
        self._by_id[desc.id] = desc
        self._by_name[desc.name] = desc
        return previous

    def get(self, msg_id: int) -> MessageDescriptor | None:
        return self._by_id.get(msg_id)

    def by_name(self, name: str) -> MessageDescriptor | None:
        return self._by_name.get(name)

    def ids(self) -> set[int]:
        return set(self._by_id)

    def names(self) -> set[str]:
        return set(self._by_name)

    def __contains__(self, msg_id: object) -> bool:
        return msg_id in self._by_id

    def __iter__(self) -> Iterator[MessageDescriptor]:
        """Resolved descriptors, in order of first declaration."""
        return iter(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)
