"""Structured diagnostics collected while decoding a log."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

# Diagnostic codes
FMT_LENGTH_DEFAULT = "fmt-length-default"
FMT_UNDECLARED = "fmt-undeclared"
FILTER_UNMATCHED = "filter-unmatched"
TYPE_EMPTY = "type-empty"
DUPLICATE_DECLARATION = "duplicate-declaration"
NAME_COLLISION = "name-collision"
FORMAT_INVALID = "format-invalid"


@dataclass
class Diagnostic:
    level: int
    code: str
    message: str
    value: Any = None


class DiagnosticSink:
    """Collects diagnostics and forwards each one to the package logger."""

    def __init__(self) -> None:
        self.diagnostics: list[Diagnostic] = []

    def emit(self, level: int, code: str, message: str, value: Any = None) -> Diagnostic:
        diag = Diagnostic(level, code, message, value)
        self.diagnostics.append(diag)
        logger.log(level, "[%s] %s", code, message)
        return diag

    def warning(self, code: str, message: str, value: Any = None) -> Diagnostic:
        return self.emit(logging.WARNING, code, message, value)

    def info(self, code: str, message: str, value: Any = None) -> Diagnostic:
        return self.emit(logging.INFO, code, message, value)

    def by_code(self, code: str) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.code == code]

    def __len__(self) -> int:
        return len(self.diagnostics)

    def __iter__(self):
        return iter(self.diagnostics)
