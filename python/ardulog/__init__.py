"""ardulog - ArduPilot DataFlash binary log decoder."""

from .schema import MessageDescriptor, FieldDef, FormatRegistry
from .framing import scan_headers, validate_headers
from .filter import MessageFilter
from .groups import MessageGroup
from .diagnostics import Diagnostic, DiagnosticSink
from .info import LogMetadata
from .decoder import DecodedLog, DecoderState, LogDecoder, decode
from .storage import LogReadError, LogWriter, build_record, read_log

__all__ = [
    "MessageDescriptor", "FieldDef", "FormatRegistry",
    "scan_headers", "validate_headers",
    "MessageFilter", "MessageGroup",
    "Diagnostic", "DiagnosticSink", "LogMetadata",
    "DecodedLog", "DecoderState", "LogDecoder", "decode",
    "LogReadError", "LogWriter", "build_record", "read_log",
]
