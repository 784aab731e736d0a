import struct

import pytest

from vitatools.mksfo import (
    SfoType,
    SfoValue,
    add_dword,
    add_string,
    build_sfo,
    default_entries,
    main,
)


def _read_sfo(blob):
    magic, version, keyofs, valofs, count = struct.unpack_from("<5I", blob)
    entries = {}
    for i in range(count):
        nameofs, align, typ, valsize, total, dataofs = struct.unpack_from(
            "<HBBIII", blob, 20 + 16 * i
        )
        start = keyofs + nameofs
        name = blob[start:blob.index(b"\0", start)].decode()
        raw = blob[valofs + dataofs:valofs + dataofs + total]
        entries[name] = (typ, valsize, total, raw, align)
    return magic, version, keyofs, valofs, count, entries


def test_default_entries_fresh_copies():
    first = default_entries()
    first[0].data = "changed"
    assert default_entries()[0].data == "00.00"
    assert [e.name for e in first][:2] == ["APP_VER", "ATTRIBUTE"]


def test_build_sfo_header():
    blob = build_sfo(default_entries())
    assert blob[:8] == b"\x00PSF\x01\x01\x00\x00"
    magic, version, keyofs, valofs, count, _ = _read_sfo(blob)
    assert count == len(default_entries())
    assert keyofs == 20 + 16 * count
    assert valofs % 4 == 0
    assert valofs > keyofs


def test_build_sfo_round_trip_values():
    entries = default_entries()
    _, _, _, _, _, parsed = _read_sfo(build_sfo(entries))
    assert set(parsed) == {e.name for e in entries}
    typ, valsize, total, raw, align = parsed["ATTRIBUTE"]
    assert typ == SfoType.VAL
    assert (valsize, total) == (4, 4)
    assert struct.unpack("<I", raw)[0] == 0x8000
    assert align == 4
    typ, valsize, total, raw, _ = parsed["TITLE"]
    assert typ == SfoType.STR
    assert total == 0x80
    assert raw.startswith(b"Homebrew\0")
    assert valsize == len(b"Homebrew") + 1


def test_automatic_string_size_is_aligned():
    _, _, _, _, _, parsed = _read_sfo(build_sfo(default_entries()))
    for typ, valsize, total, raw, _ in parsed.values():
        if typ == SfoType.STR:
            assert total % 4 == 0
            assert total >= valsize


def test_add_string_updates_existing():
    entries = default_entries()
    add_string(entries, "TITLE_ID=VITA00001")
    assert [e.data for e in entries if e.name == "TITLE_ID"] == ["VITA00001"]
    assert len(entries) == len(default_entries())


def test_add_string_appends_new():
    entries = default_entries()
    add_string(entries, "NEW_KEY=a=b")
    assert entries[-1] == SfoValue("NEW_KEY", SfoType.STR, 0, "a=b")


def test_add_dword_parses_numbers():
    entries = default_entries()
    add_dword(entries, "ATTRIBUTE=0x10")
    add_dword(entries, "EXTRA=12abc")
    assert [e.value for e in entries if e.name == "ATTRIBUTE"] == [16]
    assert entries[-1] == SfoValue("EXTRA", SfoType.VAL, 12)


@pytest.mark.parametrize("func", [add_string, add_dword])
def test_missing_equals_raises(func):
    with pytest.raises(ValueError):
        func(default_entries(), "NOEQUALS")


def test_maximum_options():
    entries = [SfoValue(f"K{i}", SfoType.VAL) for i in range(256)]
    with pytest.raises(ValueError):
        add_dword(entries, "ONE_MORE=1")


def test_main_writes_file(tmp_path):
    out = tmp_path / "param.sfo"
    status = main(["-s", "TITLE_ID=VITA00001", "-d", "PARENTAL_LEVEL=1", "My Game", str(out)])
    assert status == 0
    _, _, _, _, _, parsed = _read_sfo(out.read_bytes())
    assert parsed["TITLE"][3].startswith(b"My Game\0")
    assert parsed["STITLE"][3].startswith(b"My Game\0")
    assert parsed["TITLE_ID"][3].startswith(b"VITA00001\0")
    assert struct.unpack("<I", parsed["PARENTAL_LEVEL"][3])[0] == 1


def test_main_requires_title_and_output(tmp_path):
    assert main(["only_title"]) == 1


def test_main_bad_dword_fails(tmp_path):
    out = tmp_path / "param.sfo"
    assert main(["-d", "BROKEN", "Title", str(out)]) == 1
    assert not out.exists()