"""Per-type record tables with numpy columns."""

from __future__ import annotations

from typing import Any, Iterator

import numpy as np

from .schema import CODE_DTYPE, MessageDescriptor

LINE_NO = "LineNo"


class MessageGroup:
    """Decoded rows for one message type.

    Rows are stored once, in file order, as one numpy array per field
    label. ``line_no`` gives each row's position in the whole log and is
    filled in after every type has been extracted.
    """

    def __init__(self, descriptor: MessageDescriptor):
        self.descriptor = descriptor
        self.payloads: list[bytes] = []
        self.columns: dict[str, np.ndarray] = {}
        self.line_no = np.empty(0, dtype=np.int64)
        self.decodable = True

    @property
    def id(self) -> int:
        return self.descriptor.id

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def labels(self) -> list[str]:
        return list(self.columns)

    def store(self, payloads: list[bytes]) -> None:
        """Decode *payloads* field by field into columns.

        Raises ValueError (after keeping the raw payloads) if the
        descriptor's format cannot be decoded.
        """
        self.payloads = list(payloads)
        self.columns = {}
        try:
            fields = self.descriptor.fields
        except ValueError:
            self.decodable = False
            raise

        rows = [self.descriptor.decode(p) for p in self.payloads]
        for f in fields:
            dtype = CODE_DTYPE[f.code]
            values = [row[f.name] for row in rows]
            if f.is_array:
                self.columns[f.name] = np.array(values, dtype=dtype).reshape(-1, 32)
            else:
                self.columns[f.name] = np.array(values, dtype=dtype)

    def set_line_numbers(self, line_no: np.ndarray) -> None:
        if len(line_no) != len(self.payloads):
            raise ValueError(
                f"{self.name}: {len(line_no)} line numbers for "
                f"{len(self.payloads)} rows")
        self.line_no = np.asarray(line_no, dtype=np.int64)

    def series(self, label: str) -> tuple[np.ndarray, np.ndarray]:
        """Return (LineNo, values) for one field."""
        return self.line_no, self[label]

    def rows(self) -> Iterator[dict[str, Any]]:
        """Iterate rows as dicts, LineNo first."""
        for i in range(len(self)):
            row: dict[str, Any] = {LINE_NO: int(self.line_no[i])} if len(self.line_no) else {}
            for label, col in self.columns.items():
                value = col[i]
                row[label] = value.tolist() if isinstance(value, np.ndarray) else value.item()
            yield row

    def __getitem__(self, label: str) -> np.ndarray:
        if label == LINE_NO:
            return self.line_no
        return self.columns[label]

    def __contains__(self, label: object) -> bool:
        return label == LINE_NO or label in self.columns

    def __len__(self) -> int:
        return len(self.payloads)

    def __repr__(self) -> str:
        return f"MessageGroup({self.name!r}, id={self.id}, rows={len(self)})"
