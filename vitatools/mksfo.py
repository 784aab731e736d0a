"""Build PARAM.SFO files from default and user-supplied entries."""

from __future__ import annotations

import argparse
import enum
import re
import struct
import sys
from dataclasses import dataclass, replace
from typing import Optional

__all__ = [
    "SfoType",
    "SfoValue",
    "default_entries",
    "add_string",
    "add_dword",
    "build_sfo",
    "main",
]

PSF_MAGIC = 0x46535000
PSF_VERSION = 0x00000101
MAX_OPTIONS = 256

_HEADER = struct.Struct("<5I")
_ENTRY = struct.Struct("<HBBIII")
_ULONG_MAX = 2**64 - 1
_NUMBER = re.compile(r"[ \t\n\v\f\r]*([+-]?)(0[xX][0-9a-fA-F]+|0[0-7]*|[1-9][0-9]*)")


class SfoType(enum.IntEnum):
    BIN = 0
    STR = 2
    VAL = 4


@dataclass
class SfoValue:
    """One SFO entry; ``value`` is the number for VAL entries and the
    reserved size (0 for automatic) for string entries."""

    name: str
    type: SfoType
    value: int = 0
    data: Optional[str] = None


_DEFAULTS = (
    SfoValue("APP_VER", SfoType.STR, 0, "00.00"),
    SfoValue("ATTRIBUTE", SfoType.VAL, 0x8000),
    SfoValue("ATTRIBUTE2", SfoType.VAL, 0),
    SfoValue("ATTRIBUTE_MINOR", SfoType.VAL, 0x10),
    SfoValue("BOOT_FILE", SfoType.STR, 32, ""),
    SfoValue("CATEGORY", SfoType.STR, 0, "gd"),
    SfoValue("CONTENT_ID", SfoType.STR, 48, ""),
    SfoValue("EBOOT_APP_MEMSIZE", SfoType.VAL, 0),
    SfoValue("EBOOT_ATTRIBUTE", SfoType.VAL, 0),
    SfoValue("EBOOT_PHY_MEMSIZE", SfoType.VAL, 0),
    SfoValue("LAREA_TYPE", SfoType.VAL, 0),
    SfoValue("NP_COMMUNICATION_ID", SfoType.STR, 16, ""),
    SfoValue("PARENTAL_LEVEL", SfoType.VAL, 0),
    SfoValue("PSP2_DISP_VER", SfoType.STR, 0, "00.000"),
    SfoValue("PSP2_SYSTEM_VER", SfoType.VAL, 0),
    SfoValue("STITLE", SfoType.STR, 52, "Homebrew"),
    SfoValue("TITLE", SfoType.STR, 0x80, "Homebrew"),
    SfoValue("TITLE_ID", SfoType.STR, 0, "ABCD99999"),
    SfoValue("VERSION", SfoType.STR, 0, "00.00"),
)


def default_entries() -> list[SfoValue]:
    """Return a fresh list of the default entries."""
    return [replace(entry) for entry in _DEFAULTS]


def _strtoul(text: str) -> int:
    match = _NUMBER.match(text)
    if not match:
        return 0
    sign, digits = match.groups()
    if digits[:2].lower() == "0x":
        magnitude = int(digits[2:], 16)
    elif digits.startswith("0"):
        magnitude = int(digits, 8)
    else:
        magnitude = int(digits)
    if magnitude > _ULONG_MAX:
        return _ULONG_MAX
    return (-magnitude) & _ULONG_MAX if sign == "-" else magnitude


def _find(entries: list[SfoValue], name: str) -> Optional[SfoValue]:
    return next((entry for entry in entries if entry.name == name), None)


def _split(spec: str) -> tuple[str, str]:
    name, sep, value = spec.partition("=")
    if not sep:
        raise ValueError("Invalid option (no =)")
    return name, value


def _append(entries: list[SfoValue], entry: SfoValue) -> None:
    if len(entries) >= MAX_OPTIONS:
        raise ValueError("Maximum options reached")
    entries.append(entry)


def add_string(entries: list[SfoValue], spec: str) -> None:
    """Apply ``NAME=STR``: update an existing entry's text or add a string entry."""
    name, text = _split(spec)
    entry = _find(entries, name)
    if entry is not None:
        entry.data = text
    else:
        _append(entries, SfoValue(name, SfoType.STR, 0, text))


def add_dword(entries: list[SfoValue], spec: str) -> None:
    """Apply ``NAME=VALUE``: update an existing entry's number or add a VAL entry."""
    name, text = _split(spec)
    number = _strtoul(text) & 0xFFFFFFFF
    entry = _find(entries, name)
    if entry is not None:
        entry.value = number
    else:
        _append(entries, SfoValue(name, SfoType.VAL, number))


def build_sfo(entries: list[SfoValue]) -> bytes:
    """Serialise the entries, in order, into SFO file bytes."""
    table = bytearray()
    keys = bytearray()
    data = bytearray()
    for entry in entries:
        nameofs, dataofs = len(keys), len(data)
        keys += entry.name.encode("utf-8") + b"\0"
        if entry.type == SfoType.VAL:
            valsize = totalsize = 4
            data += struct.pack("<I", entry.value & 0xFFFFFFFF)
        else:
            raw = b"" if entry.data is None else entry.data.encode("utf-8") + b"\0"
            valsize = len(raw)
            totalsize = entry.value if entry.value else (valsize + 3) & ~3
            data += raw[:totalsize].ljust(totalsize, b"\0")
        table += _ENTRY.pack(
            nameofs & 0xFFFF, 4, int(entry.type) & 0xFF, valsize, totalsize, dataofs
        )

    keyofs = _HEADER.size + len(table)
    keys += b"\0" * (-len(keys) % 4)
    header = _HEADER.pack(PSF_MAGIC, PSF_VERSION, keyofs, keyofs + len(keys), len(entries))
    return header + bytes(table) + bytes(keys) + bytes(data)


_USAGE = (
    "usage: mksfoex [options] TITLE output.sfo\n"
    "\t-d NAME=VALUE   Add a new DWORD value\n"
    "\t-s NAME=STR     Add a new string value\n"
)


def main(argv: Optional[list[str]] = None) -> int:
    """Command entry point; return the process exit status."""
    args = sys.argv[1:] if argv is None else list(argv)
    parser = argparse.ArgumentParser(prog="mksfoex", add_help=False)
    parser.add_argument("-d", "--dword", dest="ops", action="append",
                        type=lambda s: ("d", s))
    parser.add_argument("-s", "--string", dest="ops", action="append",
                        type=lambda s: ("s", s))
    parser.add_argument("-e", "--empty", action="store_true")
    parser.add_argument("rest", nargs="*")
    try:
        options, unknown = parser.parse_known_args(args)
    except SystemExit:
        sys.stderr.write(_USAGE)
        return 1

    entries = default_entries()
    ok = True
    for kind, spec in options.ops or []:
        try:
            if kind == "d":
                add_dword(entries, spec)
            else:
                add_string(entries, spec)
        except ValueError as exc:
            print(exc, file=sys.stderr)
            if kind == "d":
                ok = False
                break

    positional = options.rest + [arg for arg in unknown if not arg.startswith("-")]
    if not ok or len(positional) < 2:
        sys.stderr.write(_USAGE)
        return 1

    title, filename = positional[0], positional[1]
    for name in ("TITLE", "STITLE"):
        entry = _find(entries, name)
        if entry is not None:
            entry.data = title

    try:
        with open(filename, "wb") as handle:
            handle.write(build_sfo(entries))
    except OSError:
        print(f"Cannot open filename {filename}", file=sys.stderr)
    return 0