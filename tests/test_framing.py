"""Test sync-pattern scanning and header validation.

Run from the repo root:
    python3 tests/test_framing.py
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "python"))

import struct

import numpy as np

from ardulog.framing import scan_headers, validate_headers
from ardulog.schema import MessageDescriptor
from ardulog.storage import build_record


GPS = MessageDescriptor(10, "GPS", 9, "Ih", ["TimeUS", "Alt"])
BARO = MessageDescriptor(11, "BARO", 11, "If", ["TimeUS", "Press"])


def gps(t, alt):
    return build_record(GPS.id, GPS.encode(t, alt))


def baro(t, press):
    return build_record(BARO.id, BARO.encode(t, press))


def test_scan_all_headers():
    """Every sync pair is a candidate, whatever follows it."""
    print("test_scan_all_headers...", end="")

    data = gps(1, 2) + baro(3, 4.0) + gps(5, 6)
    offsets = scan_headers(data)
    assert offsets.tolist() == [0, 9, 20]

    print(" OK")


def test_scan_by_id():
    """A type id restricts candidates to that type."""
    print("test_scan_by_id...", end="")

    data = gps(1, 2) + baro(3, 4.0) + gps(5, 6)
    assert scan_headers(data, GPS.id).tolist() == [0, 20]
    assert scan_headers(data, BARO.id).tolist() == [9]
    assert scan_headers(data, 99).tolist() == []

    print(" OK")


def test_scan_short_buffers():
    print("test_scan_short_buffers...", end="")

    assert scan_headers(b"").tolist() == []
    assert scan_headers(b"\xa3").tolist() == []
    assert scan_headers(b"\xa3\x95").tolist() == [0]
    assert scan_headers(b"\xa3\x95", GPS.id).tolist() == []

    print(" OK")


def test_validate_back_to_back():
    """Well-formed records of one type are all confirmed."""
    print("test_validate_back_to_back...", end="")

    data = gps(1, 2) + baro(3, 4.0) + gps(5, 6) + gps(7, 8)
    candidates = scan_headers(data)
    assert validate_headers(data, candidates, GPS.id, GPS.length).tolist() == [0, 20, 29]
    assert validate_headers(data, candidates, BARO.id, BARO.length).tolist() == [9]

    print(" OK")


def test_validate_rejects_false_positive():
    """Sync bytes inside a payload do not survive the continuity check."""
    print("test_validate_rejects_false_positive...", end="")

    fake_time = int.from_bytes(bytes([0xA3, 0x95, GPS.id, 0x00]), "little")
    data = gps(1, 2) + baro(fake_time, 4.0) + gps(5, 6)
    candidates = scan_headers(data)
    assert 12 in candidates.tolist()  # inside the BARO payload

    confirmed = validate_headers(data, candidates, GPS.id, GPS.length)
    assert confirmed.tolist() == [0, 20]

    print(" OK")


def test_validate_forward_continuity():
    """A record followed by anything but a sync header is discarded."""
    print("test_validate_forward_continuity...", end="")

    data = gps(1, 2) + b"\x00" + gps(3, 4) + gps(5, 6)
    candidates = scan_headers(data)
    confirmed = validate_headers(data, candidates, GPS.id, GPS.length)
    assert confirmed.tolist() == [10, 19]

    for o in confirmed.tolist():
        end = o + GPS.length
        if end + 1 < len(data):
            assert data[end] == 0xA3 and data[end + 1] == 0x95

    print(" OK")


def test_validate_truncated_tail():
    """A final record cut short is dropped, not partially kept."""
    print("test_validate_truncated_tail...", end="")

    data = gps(1, 2) + gps(3, 4) + gps(5, 6)[:5]
    candidates = scan_headers(data)
    confirmed = validate_headers(data, candidates, GPS.id, GPS.length)
    assert confirmed.tolist() == [0, 9]

    print(" OK")


def test_validate_never_overflows():
    """No confirmed record extends past the end of the buffer."""
    print("test_validate_never_overflows...", end="")

    rng = np.random.default_rng(1234)
    for _ in range(50):
        noise = rng.integers(0, 256, size=200, dtype=np.uint8)
        # Salt the noise with plenty of headers
        for pos in rng.integers(0, 197, size=20):
            noise[pos:pos + 3] = [0xA3, 0x95, GPS.id]
        data = noise.tobytes()
        confirmed = validate_headers(data, scan_headers(data), GPS.id, GPS.length)
        assert all(o + GPS.length <= len(data) for o in confirmed.tolist())
        assert all(data[o + 2] == GPS.id for o in confirmed.tolist())

    print(" OK")


def test_validate_drops_overlapping():
    """Offsets inside an already accepted record are not confirmed."""
    print("test_validate_drops_overlapping...", end="")

    data = bytes([0xA3, 0x95, 0x01]) * 6
    candidates = scan_headers(data)
    assert candidates.tolist() == [0, 3, 6, 9, 12, 15]
    assert validate_headers(data, candidates, 0x01, 6).tolist() == [0, 6, 12]

    print(" OK")


def test_validate_final_record_exempt():
    """The last record has no following header and is still kept."""
    print("test_validate_final_record_exempt...", end="")

    data = gps(1, 2)
    assert validate_headers(data, scan_headers(data), GPS.id, GPS.length).tolist() == [0]

    # One trailing byte can be checked, and must be the first sync byte
    assert validate_headers(data + b"\xa3", scan_headers(data + b"\xa3"),
                            GPS.id, GPS.length).tolist() == [0]
    assert validate_headers(data + b"\x00", scan_headers(data + b"\x00"),
                            GPS.id, GPS.length).tolist() == []

    print(" OK")


def test_validate_empty():
    print("test_validate_empty...", end="")

    data = struct.pack("<I", 0xDEADBEEF)
    assert validate_headers(data, scan_headers(data), GPS.id, GPS.length).tolist() == []
    assert validate_headers(gps(1, 2), scan_headers(gps(1, 2)), GPS.id, 2).tolist() == []

    print(" OK")


if __name__ == "__main__":
    print("ardulog framing tests")
    print("=====================\n")

    test_scan_all_headers()
    test_scan_by_id()
    test_scan_short_buffers()
    test_validate_back_to_back()
    test_validate_rejects_false_positive()
    test_validate_forward_continuity()
    test_validate_truncated_tail()
    test_validate_never_overflows()
    test_validate_drops_overlapping()
    test_validate_final_record_exempt()
    test_validate_empty()

    print("\nAll tests passed.")
