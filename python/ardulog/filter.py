"""Inclusion policy for which message types get stored."""

from __future__ import annotations

import numbers
from collections.abc import Iterable

from .diagnostics import FILTER_UNMATCHED, DiagnosticSink
from .schema import FormatRegistry, MessageDescriptor


class MessageFilter:
    """Accept every type, a set of type names, or a set of numeric ids.

    Names and ids cannot be mixed in one filter.
    """

    def __init__(self, entries: Iterable[str | int] | None = None):
        self.names: set[str] | None = None
        self.ids: set[int] | None = None
        if entries is None:
            return
        if isinstance(entries, (str, bytes)):
            raise TypeError("message filter must be a collection, not a single string")

        items = list(entries)
        if not items:
            return
        if all(isinstance(e, str) for e in items):
            self.names = set(items)
        elif all(isinstance(e, numbers.Integral) and not isinstance(e, bool) for e in items):
            self.ids = {int(e) for e in items}
        else:
            raise TypeError("message filter must be all type names or all numeric ids")

    @property
    def active(self) -> bool:
        return self.names is not None or self.ids is not None

    def accepts(self, desc: MessageDescriptor) -> bool:
        if self.names is not None:
            return desc.name in self.names
        if self.ids is not None:
            return desc.id in self.ids
        return True

    def unmatched(self, registry: FormatRegistry) -> list[str | int]:
        """Entries that name no declared type, in sorted order."""
        if self.names is not None:
            return sorted(self.names - {d.name for d in registry.declarations})
        if self.ids is not None:
            return sorted(self.ids - registry.ids())
        return []

    def check(self, registry: FormatRegistry, sink: DiagnosticSink) -> list[str | int]:
        """Warn about every entry the registry does not know."""
        missing = self.unmatched(registry)
        for entry in missing:
            sink.warning(FILTER_UNMATCHED,
                         f"message filter entry {entry!r} matches no declared type",
                         entry)
        return missing

    def __repr__(self) -> str:
        if self.names is not None:
            return f"MessageFilter(names={sorted(self.names)})"
        if self.ids is not None:
            return f"MessageFilter(ids={sorted(self.ids)})"
        return "MessageFilter()"
