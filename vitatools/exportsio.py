"""Loading, defaulting and printing of module export configurations."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import IO, Optional, Union

from .exports import ExportsError, ModuleExports, read_module_exports
from .yamltree import YamlError, parse_yaml_stream

__all__ = [
    "sha256_32_file",
    "loads_exports",
    "load_exports",
    "generate_default_exports",
    "format_module_tree",
]

_NAME_FIELD_SIZE = 27
_CHUNK = 1 << 16

_PathLike = Union[str, Path]


def sha256_32_file(path: _PathLike) -> int:
    """Return the 32-bit NID of a file: the first four bytes of the SHA-256
    digest of its contents, read little-endian."""
    digest = hashlib.sha256()
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(_CHUNK), b""):
            digest.update(chunk)
    return int.from_bytes(digest.digest()[:4], "little")


def _elf_nid(elf: _PathLike) -> int:
    try:
        return sha256_32_file(elf)
    except OSError as exc:
        raise ExportsError(f"could not hash {elf}: {exc}") from exc


def loads_exports(text: Union[str, bytes, IO], elf: _PathLike) -> ModuleExports:
    """Read an export configuration; the module NID defaults to the ELF's hash."""
    try:
        documents = parse_yaml_stream(text)
    except ExportsError:
        raise
    except YamlError as exc:
        raise ExportsError(str(exc)) from exc
    if len(documents) != 1:
        raise ExportsError(
            f"expecting a single yaml document, got: {len(documents)}"
        )
    return read_module_exports(documents[0], _elf_nid(elf))


def load_exports(path: _PathLike, elf: _PathLike) -> ModuleExports:
    """Read an export configuration from a YAML file."""
    try:
        handle = open(path, "r", encoding="utf-8")
    except OSError as exc:
        raise ExportsError(f"could not open {path}") from exc
    with handle:
        return loads_exports(handle, elf)


def _base_name(elf: str) -> str:
    slash = elf.rfind("/")
    backslash = elf.rfind("\\")
    if slash >= 0 and backslash >= 0:
        return elf[slash + 1:] if slash > backslash else elf[backslash:]
    if slash >= 0:
        return elf[slash + 1:]
    if backslash >= 0:
        return elf[backslash:]
    return elf


def generate_default_exports(elf: _PathLike) -> ModuleExports:
    """Build the default configuration for an ELF: named after the file,
    version 1.1, no attributes, NID from the file hash and no libraries."""
    name = _base_name(str(elf))[:_NAME_FIELD_SIZE]
    return ModuleExports(
        name=name,
        ver_major=1,
        ver_minor=1,
        attributes=0,
        nid=_elf_nid(elf),
        is_image_module=False,
    )


def _text(value: Optional[str]) -> str:
    return "(null)" if value is None else value


def format_module_tree(exports: ModuleExports) -> str:
    """Return a readable summary of a loaded export configuration."""
    lines = [
        "",
        "LOADED EXPORT CONFIGURATION.",
        f'MODULE: "{exports.name}"',
        f"ATTRIBUTES: 0x{exports.attributes:04X}",
        f"NID: 0x{exports.nid:08X}",
        f"VERSION: {exports.ver_major}.{exports.ver_minor}",
        f"ENTRY: {_text(exports.start)}",
        f"STOP: {_text(exports.stop)}",
        f"EXIT: {_text(exports.exit)}",
        f"MODULES: {len(exports.libraries)}",
    ]
    for library in exports.libraries:
        lines += [
            f'\tLIBRARY: "{library.name}"',
            f"\tNID: 0x{library.nid:08X}",
            f"\tSYSCALL: {'true' if library.syscall else 'false'}",
            f"\tFUNCTIONS: {len(library.functions)}",
        ]
        for symbol in library.functions:
            lines += [f'\t\tEXPORT SYMBOL: "{symbol.name}"', f"\t\tNID: 0x{symbol.nid:08X}"]
        lines.append(f"\tVARIABLES: {len(library.variables)}")
        for symbol in library.variables:
            lines += [f'\t\tEXPORT SYMBOL: "{symbol.name}"', f"\t\tNID: 0x{symbol.nid:08X}"]
    return "\n".join(lines) + "\n"