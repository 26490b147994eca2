"""Whole-log decoder for DataFlash binary logs."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path

import numpy as np

from .diagnostics import (
    DUPLICATE_DECLARATION, FMT_LENGTH_DEFAULT, FMT_UNDECLARED, FORMAT_INVALID,
    NAME_COLLISION, TYPE_EMPTY, Diagnostic, DiagnosticSink,
)
from .filter import MessageFilter
from .framing import as_buffer, scan_headers, validate_headers
from .groups import MessageGroup
from .info import LogMetadata, find_firmware_info
from .schema import (
    FMT_DESCRIPTOR, FMT_ID, FMT_LENGTH, FMT_PAYLOAD_SIZE, HEADER_SIZE, SYNC,
    FormatRegistry, MessageDescriptor, unpack_fmt_payload,
)
from .storage import read_log

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class DecoderState(IntEnum):
    INIT = 0
    LOADED = 1
    FMT_LENGTH_RESOLVED = 2
    SCHEMA_BOOTSTRAPPED = 3
    TYPES_EXTRACTED = 4
    LINE_NUMBERED = 5
    DONE = 6


@dataclass
class DecodedLog:
    types: dict[str, MessageGroup]
    metadata: LogMetadata
    registry: FormatRegistry
    by_id: dict[int, MessageGroup] = field(default_factory=dict)
    diagnostics: list[Diagnostic] = field(default_factory=list)

    def __getitem__(self, name: str) -> MessageGroup:
        return self.types[name]

    def __contains__(self, name: object) -> bool:
        return name in self.types


def find_fmt_length(data: bytes | np.ndarray, candidates: np.ndarray,
                    fmt_id: int = FMT_ID) -> int | None:
    """Read the FMT record length from the FMT record that declares FMT.

    That record has the FMT id at offset+2 and again, as the declared id,
    at offset+3; its declared length is at offset+4.
    """
    buf = as_buffer(data)
    candidates = candidates[candidates + 4 < len(buf)]
    hits = candidates[(buf[candidates + 2] == fmt_id) & (buf[candidates + 3] == fmt_id)]
    if len(hits) == 0:
        return None
    return int(buf[hits[0] + 4])


def extract_payloads(data: bytes, offsets: np.ndarray, length: int) -> list[bytes]:
    """Slice the payload (everything after the 3-byte header) of each record."""
    return [data[o + HEADER_SIZE:o + length] for o in offsets.tolist()]


def assign_line_numbers(offset_table: dict[int, np.ndarray],
                        ids: Iterable[int] | None = None) -> dict[int, np.ndarray]:
    """Rank every record in the log and return the ranks for *ids*.

    Ranks run 1..N over the union of all offsets in *offset_table*, so a
    type's line numbers reflect its position in the complete log even
    when other types are not returned.
    """
    if not offset_table:
        return {}
    everything = np.sort(np.concatenate(list(offset_table.values())))
    wanted = set(offset_table) if ids is None else set(ids)
    return {
        msg_id: np.searchsorted(everything, offsets) + 1
        for msg_id, offsets in offset_table.items()
        if msg_id in wanted
    }


class LogDecoder:
    """Decodes a complete in-memory log into per-type message groups.

    The decoder moves through ``DecoderState`` once per call to
    ``decode_bytes``; only a failure to read the file is fatal.
    """

    def __init__(self, msg_filter: MessageFilter | Iterable[str | int] | None = None,
                 progress: ProgressCallback | None = None,
                 fmt_id: int = FMT_ID, default_fmt_length: int = FMT_LENGTH,
                 sync: tuple[int, int] = SYNC):
        if not isinstance(msg_filter, MessageFilter):
            msg_filter = MessageFilter(msg_filter)
        self.msg_filter = msg_filter
        self.progress = progress
        self.fmt_id = fmt_id
        self.default_fmt_length = default_fmt_length
        self.sync = sync
        self.state = DecoderState.INIT
        self.sink = DiagnosticSink()

    def _advance(self, state: DecoderState) -> None:
        assert state == self.state + 1, f"cannot go from {self.state.name} to {state.name}"
        self.state = state
        logger.debug("decoder state: %s", state.name)

    def decode_file(self, path: str | Path) -> DecodedLog:
        data = read_log(path)
        return self.decode_bytes(data, LogMetadata.for_path(path))

    def decode_bytes(self, data: bytes, metadata: LogMetadata | None = None) -> DecodedLog:
        self.state = DecoderState.INIT
        self.sink = DiagnosticSink()
        meta = metadata or LogMetadata()
        self._advance(DecoderState.LOADED)

        buf = as_buffer(data)
        candidates = scan_headers(buf, sync=self.sync)
        logger.debug("%d header candidates in %d bytes", len(candidates), len(buf))

        fmt_length = find_fmt_length(buf, candidates, self.fmt_id)
        if fmt_length is None:
            fmt_length = self.default_fmt_length
            self.sink.warning(
                FMT_LENGTH_DEFAULT,
                f"could not find the FMT message to extract its length, "
                f"using the default {fmt_length}", fmt_length)
        self._advance(DecoderState.FMT_LENGTH_RESOLVED)

        offset_table: dict[int, np.ndarray] = {}
        registry, fmt_group = self._bootstrap(data, buf, candidates, fmt_length, offset_table)
        self._advance(DecoderState.SCHEMA_BOOTSTRAPPED)

        self.msg_filter.check(registry, self.sink)
        groups: dict[int, MessageGroup] = {fmt_group.id: fmt_group}
        total = len(registry)
        for done, desc in enumerate(registry, 1):
            if desc.id != self.fmt_id:
                group = self._extract(data, buf, candidates, desc, offset_table)
                if group is not None:
                    groups[desc.id] = group
            if self.progress is not None:
                self.progress(done, total)
        self._advance(DecoderState.TYPES_EXTRACTED)

        for msg_id, line_no in assign_line_numbers(offset_table, groups).items():
            groups[msg_id].set_line_numbers(line_no)
        self._advance(DecoderState.LINE_NUMBERED)

        types = self._name_groups(groups)
        meta.num_msgs = sum(len(o) for o in offset_table.values())
        meta.fmt_length = fmt_length
        find_firmware_info(types.get("MSG"), meta)
        self._advance(DecoderState.DONE)

        logger.info("decoded %d records of %d types", meta.num_msgs, len(registry))
        return DecodedLog(types, meta, registry, groups, list(self.sink))

    def _bootstrap(self, data: bytes, buf: np.ndarray, candidates: np.ndarray,
                   fmt_length: int, offset_table: dict[int, np.ndarray]
                   ) -> tuple[FormatRegistry, MessageGroup]:
        """Build the registry from the FMT stream; FMT rows fill FMT's own group."""
        offsets = validate_headers(buf, candidates, self.fmt_id, fmt_length, self.sync)
        offset_table[self.fmt_id] = offsets
        payloads = extract_payloads(data, offsets, fmt_length)

        registry = FormatRegistry()
        if fmt_length - HEADER_SIZE < FMT_PAYLOAD_SIZE:
            self.sink.warning(
                FORMAT_INVALID,
                f"FMT length {fmt_length} is too short for a FMT payload",
                fmt_length)
            payloads = []

        for payload in payloads:
            desc = unpack_fmt_payload(payload)
            previous = registry.register(desc)
            if previous is not None:
                self.sink.warning(
                    DUPLICATE_DECLARATION,
                    f"type {desc.id} redeclared as {desc.name!r} "
                    f"(was {previous.name!r}), using the latest declaration",
                    desc.id)

        fmt_desc = registry.get(self.fmt_id)
        if fmt_desc is None:
            fmt_desc = dataclasses.replace(FMT_DESCRIPTOR, id=self.fmt_id, length=fmt_length,
                                           labels=list(FMT_DESCRIPTOR.labels))
            registry.register(fmt_desc)
            self.sink.warning(FMT_UNDECLARED,
                              "no FMT record declares the FMT message, using the built-in layout",
                              self.fmt_id)

        fmt_group = MessageGroup(fmt_desc)
        self._store(fmt_group, payloads)
        logger.debug("bootstrapped %d declarations, FMT length %d",
                     len(registry.declarations), fmt_length)
        return registry, fmt_group

    def _extract(self, data: bytes, buf: np.ndarray, candidates: np.ndarray,
                 desc: MessageDescriptor, offset_table: dict[int, np.ndarray]
                 ) -> MessageGroup | None:
        """Confirm one type's records; store them only if the filter accepts it."""
        offsets = validate_headers(buf, candidates, desc.id, desc.length, self.sync)
        # Recorded even for filtered types so line numbers cover the whole log
        offset_table[desc.id] = offsets
        if len(offsets) == 0:
            self.sink.info(TYPE_EMPTY, f"no records found for {desc.name} (id {desc.id})",
                           desc.name)

        if not self.msg_filter.accepts(desc):
            return None

        group = MessageGroup(desc)
        self._store(group, extract_payloads(data, offsets, desc.length))
        return group

    def _name_groups(self, groups: dict[int, MessageGroup]) -> dict[str, MessageGroup]:
        """Key groups by type name; a name already taken gets its id appended."""
        types: dict[str, MessageGroup] = {}
        for group in groups.values():
            key = group.name
            if key in types:
                key = f"{group.name}_{group.id}"
                self.sink.warning(
                    NAME_COLLISION,
                    f"types {types[group.name].id} and {group.id} are both named "
                    f"{group.name!r}, storing type {group.id} as {key!r}",
                    group.name)
            types[key] = group
        return types

    def _store(self, group: MessageGroup, payloads: list[bytes]) -> None:
        try:
            group.store(payloads)
        except ValueError as e:
            self.sink.warning(FORMAT_INVALID, f"cannot decode {group.name}: {e}", group.name)


def decode(path: str | Path,
           msg_filter: MessageFilter | Iterable[str | int] | None = None,
           progress: ProgressCallback | None = None) -> DecodedLog:
    """Read and decode a DataFlash log file.

    *msg_filter* restricts which types are stored: a collection of type
    names or of numeric type ids. Line numbers always count every record
    in the file.
    """
    return LogDecoder(msg_filter, progress).decode_file(path)
