"""Import database model (modules, libraries, stubs) and its YAML reader."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Iterable, Optional, TypeVar, Union

from .yamltree import (
    Node,
    YamlError,
    node_type_str,
    parse_bool,
    parse_u32,
    parse_yaml_stream,
)

__all__ = [
    "ImportsError",
    "ImportStub",
    "ImportLibrary",
    "ImportModule",
    "Imports",
    "read_imports",
    "loads_imports",
    "load_imports",
]

logger = logging.getLogger(__name__)

_DEFAULT_FIRMWARE = "3.60"


class ImportsError(YamlError):
    """Raised when an import database cannot be read."""


@dataclass
class ImportStub:
    name: str
    nid: int = 0


_T = TypeVar("_T")


def _find(entries: Iterable[_T], nid: int) -> Optional[_T]:
    return next((entry for entry in entries if entry.nid == nid), None)


@dataclass
class ImportLibrary:
    name: str
    nid: int = 0
    is_kernel: bool = False
    functions: list[ImportStub] = field(default_factory=list)
    variables: list[ImportStub] = field(default_factory=list)
    flags: int = 0

    def find_function(self, nid: int) -> Optional[ImportStub]:
        return _find(self.functions, nid)

    def find_variable(self, nid: int) -> Optional[ImportStub]:
        return _find(self.variables, nid)


@dataclass
class ImportModule:
    name: str
    nid: int = 0
    libraries: list[ImportLibrary] = field(default_factory=list)

    def find_library(self, nid: int) -> Optional[ImportLibrary]:
        return _find(self.libraries, nid)


@dataclass
class Imports:
    firmware: Optional[str] = None
    postfix: str = ""
    modules: list[ImportModule] = field(default_factory=list)

    def find_module(self, nid: int) -> Optional[ImportModule]:
        return _find(self.modules, nid)


def _error(node: Node, message: str) -> ImportsError:
    return ImportsError(f"line: {node.line}, column: {node.column}, {message}")


def _pairs(node: Node, what: str) -> list[tuple[Node, Node]]:
    if not node.is_mapping():
        raise _error(node, f"expecting {what} to be a mapping, got '{node_type_str(node)}'.")
    return node.pairs


def _key(node: Node, what: str) -> str:
    if not node.is_scalar():
        raise _error(node, f"expecting {what} to be scalar, got '{node_type_str(node)}'.")
    return node.value


def _u32(node: Node, what: str) -> int:
    if not node.is_scalar():
        raise _error(node, f"expecting {what} to be scalar, got '{node_type_str(node)}'.")
    try:
        return parse_u32(node)
    except YamlError as exc:
        raise _error(
            node, f"could not convert {what} '{node.value}' to 32 bit integer."
        ) from exc


def _read_stubs(node: Node, kind: str) -> list[ImportStub]:
    stubs = []
    for key_node, value_node in _pairs(node, f"{kind}s"):
        name = _key(key_node, kind)
        if not value_node.is_scalar():
            raise _error(
                value_node,
                f"expecting {kind} value to be scalar, got '{node_type_str(value_node)}'.",
            )
        stubs.append(ImportStub(name, _u32(value_node, f"{kind} nid")))
    return stubs


def _read_library(name: str, node: Node) -> ImportLibrary:
    library = ImportLibrary(name)
    for key_node, child in _pairs(node, "library"):
        key = _key(key_node, "library key")
        if key == "kernel":
            if not child.is_scalar():
                raise _error(
                    child,
                    "expecting library syscall flag to be scalar, "
                    f"got '{node_type_str(child)}'.",
                )
            try:
                library.is_kernel = parse_bool(child)
            except YamlError as exc:
                raise _error(
                    child,
                    f"could not convert library flag to boolean, got '{child.value}'. "
                    "expected 'true' or 'false'.",
                ) from exc
        elif key == "functions":
            library.functions.extend(_read_stubs(child, "function"))
        elif key == "variables":
            library.variables.extend(_read_stubs(child, "variable"))
        elif key == "nid":
            library.nid = _u32(child, "library nid")
        elif key == "version":
            version = _u32(child, "library version")
            if version > 0xFFFF:
                raise _error(child, "Library version must be 65535 or lower.")
            library.flags = (library.flags | (version << 16)) & 0xFFFFFFFF
        else:
            raise _error(child, f"unrecognised library key '{key}'.")
    return library


def _read_module(name: str, node: Node) -> ImportModule:
    module = ImportModule(name)
    for key_node, child in _pairs(node, "module"):
        key = _key(key_node, "module key")
        if key == "nid":
            module.nid = _u32(child, "module nid")
        elif key == "libraries":
            for lib_key, lib_body in _pairs(child, "libraries"):
                module.libraries.append(
                    _read_library(_key(lib_key, "library key"), lib_body)
                )
        else:
            raise _error(child, f"unrecognised module key '{key}'.")
    return module


def read_imports(document: Node) -> Imports:
    """Build an :class:`Imports` database from a parsed YAML document."""
    if not document.is_mapping():
        raise _error(
            document,
            f"expecting root node to be a mapping, got '{node_type_str(document)}'.",
        )
    if not document.pairs:
        raise _error(
            document, "expecting at least one entry within root mapping, got 0."
        )

    imports = Imports()
    for key_node, child in document.pairs:
        if not key_node.is_scalar():
            continue
        key = key_node.value
        if key == "firmware":
            if not child.is_scalar():
                raise _error(
                    child,
                    f"expecting firmware to be scalar, got '{node_type_str(child)}'.",
                )
            firmware = child.value
            if firmware == _DEFAULT_FIRMWARE:
                continue
            imports.firmware = firmware
            imports.postfix = "_" + firmware.replace(".", "")
        elif key == "modules":
            for mod_key, mod_body in _pairs(child, "modules"):
                imports.modules.append(
                    _read_module(_key(mod_key, "modules key"), mod_body)
                )
        elif key == "version":
            pass
        else:
            logger.warning(
                "line: %d, column: %d, unknown tag '%s'.",
                key_node.line,
                key_node.column,
                key,
            )
    return imports


def loads_imports(text: Union[str, bytes, IO]) -> Imports:
    """Read an import database from YAML text or an open text stream."""
    try:
        documents = parse_yaml_stream(text)
    except ImportsError:
        raise
    except YamlError as exc:
        raise ImportsError(str(exc)) from exc
    if len(documents) != 1:
        raise ImportsError(
            f"expecting a single yaml document, got: {len(documents)}"
        )
    return read_imports(documents[0])


def load_imports(path: Union[str, Path]) -> Imports:
    """Read an import database from a YAML file."""
    try:
        with open(path, "r", encoding="utf-8") as handle:
            return loads_imports(handle)
    except OSError as exc:
        raise ImportsError(f"could not open {path}") from exc