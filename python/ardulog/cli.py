"""ardulog command-line tool."""

from __future__ import annotations

import argparse
import heapq
import logging
import os
import sys
from typing import Any, Iterator

from .decoder import DecodedLog, decode
from .groups import LINE_NO
from .storage import LogReadError


def _format_value(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.7g}"
    return str(value)


def _format_row(name: str, row: dict[str, Any]) -> str:
    line_no = row.pop(LINE_NO, 0)
    fields_str = ", ".join(f"{k}={_format_value(v)}" for k, v in row.items())
    return f"[{line_no:8d}] {name}: {fields_str}"


def _rows_in_order(log: DecodedLog) -> Iterator[tuple[str, dict[str, Any]]]:
    """Merge every group's rows back into file order."""
    def tagged(group):
        for row in group.rows():
            yield row[LINE_NO], group.name, row

    streams = [tagged(g) for g in log.types.values() if len(g.line_no)]
    for _, name, row in heapq.merge(*streams, key=lambda item: item[0]):
        yield name, row


def cmd_dump(args: argparse.Namespace) -> None:
    """Dump a log file to stdout."""
    log = decode(args.file, args.type or args.id or None)
    for name, row in _rows_in_order(log):
        print(_format_row(name, row))


def cmd_schema(args: argparse.Namespace) -> None:
    """Print the message types declared in a log file."""
    log = decode(args.file)
    for d in log.registry:
        print(f"[{d.id:3d}] {d.name}")
        print(f"      length={d.length} format={d.format}")
        try:
            fields = d.fields
        except ValueError as e:
            print(f"        (undecodable: {e})")
        else:
            for f in fields:
                scale = f" scale={f.scale:g}" if f.scale is not None else ""
                print(f"        {f.name:20s} offset={f.offset:3d} "
                      f"size={f.size:3d} code={f.code}{scale}")
        print()


def cmd_info(args: argparse.Namespace) -> None:
    """Print summary info about a DataFlash log file."""
    log = decode(args.file)
    file_size = os.path.getsize(args.file)
    meta = log.metadata

    print(f"File:       {meta.file_name}")
    print(f"Size:       {file_size:,} bytes")
    print(f"Records:    {meta.num_msgs:,}")
    print(f"FMT length: {meta.fmt_length}")
    if meta.platform:
        print(f"Firmware:   {meta.platform} {meta.version or ''} {meta.commit or ''}".rstrip())
    else:
        print("Firmware:   (unknown)")

    print(f"\nTypes ({len(log.registry)}):")
    print(f"  {'ID':>4s}  {'Name':<6s}  {'Records':>8s}  {'Length':>6s}  Fields")
    for d in log.registry:
        group = log.by_id.get(d.id)
        count = len(group) if group is not None else 0
        print(f"  {d.id:4d}  {d.name:<6s}  {count:8,}  {d.length:6d}  {','.join(d.labels)}")

    if log.diagnostics:
        print(f"\nDiagnostics ({len(log.diagnostics)}):")
        for diag in log.diagnostics:
            print(f"  {logging.getLevelName(diag.level):7s} {diag.code}: {diag.message}")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="ardulog",
                                     description="ArduPilot DataFlash log tool")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log decoder progress to stderr")
    sub = parser.add_subparsers(dest="command")

    # dump
    p_dump = sub.add_parser("dump", help="Dump a log file in record order")
    p_dump.add_argument("file", help="Path to .bin log file")
    which = p_dump.add_mutually_exclusive_group()
    which.add_argument("--type", action="append",
                       help="Only dump this message type (repeatable)")
    which.add_argument("--id", type=int, action="append",
                       help="Only dump this numeric type id (repeatable)")

    # schema
    p_schema = sub.add_parser("schema", help="Show message types declared in a log file")
    p_schema.add_argument("file", help="Path to .bin log file")

    # info
    p_info = sub.add_parser("info", help="Show summary info about a log file")
    p_info.add_argument("file", help="Path to .bin log file")

    args = parser.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG,
                            format="%(levelname)s %(name)s: %(message)s")

    commands = {"dump": cmd_dump, "schema": cmd_schema, "info": cmd_info}
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        return

    try:
        command(args)
    except LogReadError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
