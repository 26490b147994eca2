"""Log-level metadata: file identity and firmware information."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .groups import MessageGroup

PLATFORMS = ("ArduPlane", "ArduCopter", "ArduRover", "ArduSub")


@dataclass
class LogMetadata:
    file_name: str | None = None
    file_path: str | None = None
    platform: str | None = None
    version: str | None = None
    commit: str | None = None
    num_msgs: int = 0
    fmt_length: int = 0

    @classmethod
    def for_path(cls, path: str | Path) -> LogMetadata:
        p = Path(path).resolve()
        return cls(file_name=p.name, file_path=str(p.parent))


def parse_firmware_message(message: str) -> tuple[str, str | None, str | None] | None:
    """Split a banner like ``ArduCopter V4.3.0 (abc1234)``.

    Returns (platform, version, commit), or None if *message* does not
    start with a known vehicle platform.
    """
    for platform in PLATFORMS:
        if not message.startswith(platform):
            continue
        parts = message.split()
        version = parts[1] if len(parts) > 1 else None
        commit = parts[2].strip("()") if len(parts) > 2 else None
        return platform, version, commit
    return None


def find_firmware_info(msg_group: MessageGroup | None, meta: LogMetadata) -> None:
    """Fill platform/version/commit from the MSG stream.

    The last matching banner wins.
    """
    if msg_group is None or "Message" not in msg_group:
        return
    for message in msg_group["Message"]:
        parsed = parse_firmware_message(str(message))
        if parsed is not None:
            meta.platform, meta.version, meta.commit = parsed
