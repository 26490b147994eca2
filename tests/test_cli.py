"""Test the ardulog command-line tool against a generated log.

Run from the repo root:
    python3 tests/test_cli.py
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "python"))

import contextlib
import io
import tempfile

from ardulog.cli import main
from ardulog.schema import MessageDescriptor
from ardulog.storage import LogWriter


ATT = MessageDescriptor(30, "ATT", 3 + 8 + 2 + 2, "Qcc", ["TimeUS", "Roll", "Pitch"])
MSG = MessageDescriptor(31, "MSG", 3 + 8 + 64, "QZ", ["TimeUS", "Message"])


def write_test_log(path):
    with LogWriter(path) as w:
        w.add_type(ATT)
        w.add_type(MSG)
        w.write("MSG", 1, "ArduPlane V4.5.1 (deadbeef)")
        w.write("ATT", 2, 1.5, -2.25)
        w.write("ATT", 3, 1.75, -2.5)


def run(*argv):
    out = io.StringIO()
    with contextlib.redirect_stdout(out):
        main(list(argv))
    return out.getvalue()


def test_cli_dump():
    print("test_cli_dump...", end="")

    with tempfile.NamedTemporaryFile(suffix=".bin", delete=False) as f:
        tmppath = f.name
    try:
        write_test_log(tmppath)
        lines = run("dump", tmppath).splitlines()
        assert len(lines) == 6
        assert "FMT" in lines[0]
        assert "MSG: TimeUS=1, Message=ArduPlane V4.5.1 (deadbeef)" in lines[3]
        assert "ATT: TimeUS=2, Roll=1.5, Pitch=-2.25" in lines[4]
        assert lines[5].split("]")[0].strip("[ ") == "6"

        lines = run("dump", tmppath, "--type", "ATT").splitlines()
        assert [ln for ln in lines if "MSG:" in ln] == []
        assert len([ln for ln in lines if "ATT:" in ln]) == 2
    finally:
        os.unlink(tmppath)

    print(" OK")


def test_cli_dump_by_id():
    print("test_cli_dump_by_id...", end="")

    with tempfile.NamedTemporaryFile(suffix=".bin", delete=False) as f:
        tmppath = f.name
    try:
        write_test_log(tmppath)
        lines = run("dump", tmppath, "--id", "30").splitlines()
        assert [ln for ln in lines if "MSG:" in ln] == []
        assert len([ln for ln in lines if "ATT:" in ln]) == 2
        # Global line numbers survive the filter
        assert lines[-1].split("]")[0].strip("[ ") == "6"

        err = io.StringIO()
        try:
            with contextlib.redirect_stderr(err):
                main(["dump", tmppath, "--type", "ATT", "--id", "30"])
        except SystemExit as e:
            assert e.code == 2
        else:
            raise AssertionError("--type and --id together should be rejected")
    finally:
        os.unlink(tmppath)

    print(" OK")


def test_cli_schema_and_info():
    print("test_cli_schema_and_info...", end="")

    with tempfile.NamedTemporaryFile(suffix=".bin", delete=False) as f:
        tmppath = f.name
    try:
        write_test_log(tmppath)
        out = run("schema", tmppath)
        assert "[ 30] ATT" in out
        assert "scale=0.01" in out

        out = run("info", tmppath)
        assert "Records:    6" in out
        assert "ArduPlane V4.5.1 deadbeef" in out
    finally:
        os.unlink(tmppath)

    print(" OK")


def test_cli_missing_file():
    print("test_cli_missing_file...", end="")

    err = io.StringIO()
    try:
        with contextlib.redirect_stderr(err):
            main(["info", os.path.join(tempfile.gettempdir(), "no-such-dir", "x.bin")])
    except SystemExit as e:
        assert e.code == 1
    else:
        raise AssertionError("expected SystemExit")
    assert "Error:" in err.getvalue()

    print(" OK")


if __name__ == "__main__":
    print("ardulog CLI tests")
    print("=================\n")

    test_cli_dump()
    test_cli_dump_by_id()
    test_cli_schema_and_info()
    test_cli_missing_file()

    print("\nAll tests passed.")
