"""Module export configuration model and its YAML reader."""

from __future__ import annotations

import hashlib
import logging
import struct
from dataclasses import dataclass, field
from typing import Optional, Union

from .yamltree import Node, YamlError, node_type_str, parse_bool, parse_u32

__all__ = [
    "ExportsError",
    "ExportSymbol",
    "LibraryExport",
    "ModuleExports",
    "sha256_32",
    "read_module_exports",
]

logger = logging.getLogger(__name__)

MODULE_NAME_MAX = 26


class ExportsError(YamlError):
    """Raised when an export configuration cannot be read."""


def sha256_32(*args: Union[bytes, bytearray, str]) -> int:
    """Return the 32-bit NID of the concatenated parts: the first four bytes
    of their SHA-256 digest, read little-endian."""
    digest = hashlib.sha256()
    for part in args:
        digest.update(part.encode("utf-8") if isinstance(part, str) else bytes(part))
    return int.from_bytes(digest.digest()[:4], "little")


@dataclass
class ExportSymbol:
    name: str
    nid: int


@dataclass
class LibraryExport:
    name: str
    version: int = 1
    syscall: bool = False
    functions: list[ExportSymbol] = field(default_factory=list)
    variables: list[ExportSymbol] = field(default_factory=list)
    nid: int = 0


@dataclass
class ModuleExports:
    name: str = ""
    ver_major: int = 0
    ver_minor: int = 0
    attributes: int = 0
    nid: int = 0
    is_image_module: bool = False
    bootstart: Optional[str] = None
    start: Optional[str] = None
    stop: Optional[str] = None
    exit: Optional[str] = None
    libraries: list[LibraryExport] = field(default_factory=list)


def _error(node: Node, message: str) -> ExportsError:
    return ExportsError(f"line: {node.line}, column: {node.column}, {message}")


def _key(node: Node, what: str) -> str:
    if not node.is_scalar():
        raise _error(node, f"expecting {what} to be scalar, got '{node_type_str(node)}'.")
    return node.value


def _pairs(node: Node, what: str) -> list[tuple[Node, Node]]:
    if not node.is_mapping():
        raise _error(node, f"expecting {what} to be a mapping, got '{node_type_str(node)}'.")
    return node.pairs


def _u32(node: Node, what: str, bits: int = 32) -> int:
    if not node.is_scalar():
        raise _error(node, f"expecting {what} to be scalar, got '{node_type_str(node)}'.")
    try:
        return parse_u32(node)
    except YamlError as exc:
        raise _error(
            node, f"could not convert {what} '{node.value}' to {bits} bit integer."
        ) from exc


def _symbol_nid(library: LibraryExport, name: str) -> int:
    if library.version in (0, 1) or library.syscall:
        return sha256_32(name)
    return sha256_32(struct.pack(">I", library.version), library.name, name)


def _read_symbol(entry: Node, library: LibraryExport, kind: str) -> ExportSymbol:
    if entry.is_scalar():
        return ExportSymbol(entry.value, _symbol_nid(library, entry.value))
    if entry.is_mapping():
        if len(entry.pairs) != 1:
            raise _error(entry, f"Invalid reference count : {len(entry.pairs)}")
        name_node, nid_node = entry.pairs[0]
        if not name_node.is_scalar() or not nid_node.is_scalar():
            raise _error(
                entry,
                f"expecting {kind} name to be scalar, got '{node_type_str(entry)}'.",
            )
        try:
            nid = parse_u32(nid_node)
        except YamlError as exc:
            raise _error(
                nid_node,
                f"could not convert {kind} nid '{nid_node.value}' to 32 bit integer.",
            ) from exc
        return ExportSymbol(name_node.value, nid)
    raise _error(entry, f"Unhandled type, got '{node_type_str(entry)}'.")


def _read_symbols(node: Node, library: LibraryExport, kind: str) -> list[ExportSymbol]:
    if not node.is_sequence():
        raise _error(node, f"expecting {kind}s to be a sequence, got '{node_type_str(node)}'.")
    return [_read_symbol(entry, library, kind) for entry in node.items]


def _read_library(name: str, node: Node) -> LibraryExport:
    library = LibraryExport(name, nid=sha256_32(name))
    for key_node, child in _pairs(node, "library"):
        key = _key(key_node, "library key")
        if key == "syscall":
            if not child.is_scalar():
                raise _error(
                    child,
                    "expecting library syscall flag to be scalar, "
                    f"got '{node_type_str(child)}'.",
                )
            try:
                library.syscall = parse_bool(child)
            except YamlError as exc:
                raise _error(
                    child,
                    "could not convert export library flag to boolean, "
                    f"got '{child.value}'. expected 'true' or 'false'.",
                ) from exc
        elif key == "functions":
            library.functions.extend(_read_symbols(child, library, "function"))
        elif key == "variables":
            library.variables.extend(_read_symbols(child, library, "variable"))
        elif key == "nid":
            library.nid = _u32(child, "library nid")
        elif key == "version":
            version = _u32(child, "library version")
            if version > 0xFFFF:
                raise _error(child, "Library version must be 65535 or lower.")
            library.version = version
            library.nid = sha256_32(struct.pack(">I", version), library.name)
        else:
            raise _error(child, f"unrecognised library key '{key}'.")
    return library


def _read_version(node: Node, exports: ModuleExports) -> None:
    for key_node, child in _pairs(node, "module version"):
        key = _key(key_node, "module version key")
        if key not in ("major", "minor"):
            raise _error(child, f"unrecognised module version key '{key}'.")
        value = _u32(child, f"module {key} version", bits=8)
        if value > 0xFF:
            raise _error(child, f"module {key} version must be no more than 8 bits long.")
        if key == "major":
            exports.ver_major = value
        else:
            exports.ver_minor = value


def _read_entry_points(node: Node, exports: ModuleExports) -> None:
    for key_node, child in _pairs(node, "main"):
        key = _key(key_node, "main entry key")
        if key not in ("start", "bootstart", "stop", "exit"):
            raise _error(child, f"unrecognised entry-point '{key}'.")
        if not child.is_scalar():
            raise _error(
                child,
                f"expecting '{key}' entry-point to be scalar, got '{node_type_str(child)}'.",
            )
        setattr(exports, key, child.value)


def _read_libraries(node: Node, exports: ModuleExports) -> None:
    for key_node, child in _pairs(node, "export list"):
        name = _key(key_node, "export list key")
        exports.libraries.append(_read_library(name, child))


def _read_module_info(node: Node, exports: ModuleExports) -> None:
    for key_node, child in _pairs(node, "module info"):
        key = _key(key_node, "module info key")
        if key == "attributes":
            value = _u32(child, "module attribute", bits=16)
            if value > 0xFFFF:
                raise _error(child, "module attribute must be no more than 16 bits long.")
            exports.attributes = value
        elif key == "imagemodule":
            if not child.is_scalar():
                raise _error(
                    child, f"expecting imagemodule to be scalar, got '{node_type_str(child)}'."
                )
            if child.value == "true":
                exports.is_image_module = True
            elif child.value == "false":
                exports.is_image_module = False
            else:
                raise _error(
                    child,
                    "Received unexpected value in imagemodule, "
                    f"got '{child.value}'. Valid value is \"true\" or \"false\".",
                )
        elif key == "version":
            _read_version(child, exports)
        elif key == "nid":
            exports.nid = _u32(child, "module nid")
        elif key == "main":
            _read_entry_points(child, exports)
        elif key == "modules":
            logger.warning(
                "line: %d, column: %d, use of 'modules' is deprecated, "
                "'libraries' should be used instead.",
                child.line,
                child.column,
            )
            _read_libraries(child, exports)
        elif key == "libraries":
            _read_libraries(child, exports)
        else:
            raise _error(child, f"module info key '{key}'.")


def read_module_exports(document: Node, default_nid: int) -> ModuleExports:
    """Build a :class:`ModuleExports` from a parsed YAML document."""
    if not document.is_mapping():
        raise _error(
            document,
            f"expecting root node to be a mapping, got '{node_type_str(document)}'.",
        )
    if len(document.pairs) != 1:
        raise _error(
            document,
            "expecting a single entry within root mapping, "
            f"got {len(document.pairs)}.",
        )
    name_node, body = document.pairs[0]
    if not name_node.is_scalar():
        raise _error(
            name_node,
            f"expecting a scalar for module name, got '{node_type_str(name_node)}'.",
        )
    if len(name_node.value) > MODULE_NAME_MAX:
        raise _error(
            name_node,
            f"module name '{name_node.value}' is too long for module info. "
            f"use {MODULE_NAME_MAX} characters or less.",
        )
    exports = ModuleExports(name=name_node.value, nid=default_nid)
    _read_module_info(body, exports)
    return exports