"""Consistency checks for NID database directories.

Every sub-directory of a database directory is one database version. All YAML
files in it are loaded into one context, and each function or variable entry is
checked against the entries loaded before it: names must be unique within a
library, sorted within a library, of one type everywhere, of one NID within a
module, and unique within user or kernel space. A bypass database can allow
repeated names for chosen modules or libraries.
"""

from __future__ import annotations

import enum
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Optional, Union

from .yamltree import Node, YamlError, node_type_str, parse_u32, parse_yaml_stream

__all__ = [
    "CheckError",
    "EntryType",
    "Locate",
    "NidCheckFailed",
    "NidCheckContext",
    "check_database_dir",
    "main",
]

logger = logging.getLogger(__name__)

_PathLike = Union[str, Path]


class CheckError(enum.IntEnum):
    ERROR = 0x80010001
    NO_MEMORY = 0x80010002
    OPEN_FAILED = 0x80010003
    CHECK_FAILED = 0x80010004
    DUPLICATE_NAME = 0x80010005
    DIFF_TYPE = 0x80010006
    INVALID_FORMAT = 0x80010007
    BAD_SORT = 0x80010008


class EntryType(enum.IntEnum):
    FUNCTION = 0
    VARIABLE = 1

    @property
    def label(self) -> str:
        return "function" if self is EntryType.FUNCTION else "variable"


class Locate(enum.IntEnum):
    USER = 0
    KERNEL = 1

    @property
    def label(self) -> str:
        return "kernel" if self is Locate.KERNEL else "user"


class NidCheckFailed(Exception):
    """Raised when a database breaks a rule or cannot be read."""

    def __init__(self, code: CheckError, message: str = "") -> None:
        super().__init__(f"{message} (0x{int(code):X})" if message else f"0x{int(code):X}")
        self.code = code


@dataclass(eq=False)
class _Module:
    name: str
    libraries: list["_Library"] = field(default_factory=list)


@dataclass(eq=False)
class _Library:
    name: str
    module: _Module
    locate: Locate = Locate.USER
    entries: list["_Entry"] = field(default_factory=list)


@dataclass(eq=False)
class _Entry:
    name: str
    type: EntryType
    nid: int
    library: _Library

    @property
    def module(self) -> _Module:
        return self.library.module


def _invalid(node: Node, what: str) -> NidCheckFailed:
    return NidCheckFailed(
        CheckError.INVALID_FORMAT,
        f"line: {node.line}, column: {node.column}, {what}, got '{node_type_str(node)}'",
    )


def _key(node: Node) -> str:
    if not node.is_scalar():
        raise _invalid(node, "expecting key to be scalar")
    return node.value


class NidCheckContext:
    """All modules, libraries and entries loaded for one database version.

    ``error`` keeps the first error met in this context. A ``permissive``
    context allows every repeated name; it is used to load a bypass database.
    """

    def __init__(
        self, bypass: Optional["NidCheckContext"] = None, *, permissive: bool = False
    ) -> None:
        self.bypass = bypass
        self.permissive = permissive
        self.modules: list[_Module] = []
        self.error: Optional[CheckError] = None
        self._entries: list[_Entry] = []

    def add_database(self, path: _PathLike) -> None:
        """Load and check one database file."""
        try:
            handle = open(path, "r", encoding="utf-8")
        except OSError as exc:
            self._record(CheckError.OPEN_FAILED)
            raise NidCheckFailed(CheckError.OPEN_FAILED, f"could not open {path}") from exc
        with handle:
            self.add_database_text(handle)

    def add_database_text(self, text: Union[str, bytes, IO]) -> None:
        """Load and check one database given as YAML text or a text stream."""
        try:
            self._parse(text)
        except NidCheckFailed as exc:
            self._record(exc.code)
            raise

    def _record(self, code: CheckError) -> None:
        if self.error is None:
            self.error = code

    def _parse(self, text: Union[str, bytes, IO]) -> None:
        try:
            documents = parse_yaml_stream(text)
        except YamlError as exc:
            logger.error("error: %s", exc)
            raise NidCheckFailed(CheckError.INVALID_FORMAT, str(exc)) from exc
        if not documents:
            raise NidCheckFailed(CheckError.INVALID_FORMAT, "no yaml document")
        root = documents[0]
        if not root.is_mapping():
            logger.error(
                "error: line: %d, column: %d, expecting root node to be a mapping, got '%s'.",
                root.line,
                root.column,
                node_type_str(root),
            )
            raise _invalid(root, "expecting root node to be a mapping")
        for key_node, child in root.pairs:
            if _key(key_node) == "modules" and child.is_mapping():
                for name_node, body in child.pairs:
                    self._add_module(_key(name_node), body)

    def _add_module(self, name: str, node: Node) -> None:
        module = _Module(name)
        self.modules.append(module)
        if not node.is_mapping():
            return
        for key_node, child in node.pairs:
            if _key(key_node) != "libraries":
                continue
            if child.is_mapping():
                for lib_node, body in child.pairs:
                    self._add_library(module, _key(lib_node), body)
            elif not child.is_scalar():
                raise _invalid(child, "expecting libraries to be a mapping")

    def _add_library(self, module: _Module, name: str, node: Node) -> None:
        library = _Library(name, module)
        module.libraries.append(library)
        if not node.is_mapping():
            return
        for key_node, child in node.pairs:
            key = _key(key_node)
            if key == "kernel":
                if child.is_scalar() and child.value == "false":
                    library.locate = Locate.USER
                elif child.is_scalar() and child.value == "true":
                    library.locate = Locate.KERNEL
                else:
                    raise _invalid(child, "expecting kernel to be 'true' or 'false'")
            elif key in ("functions", "variables"):
                entry_type = EntryType.FUNCTION if key == "functions" else EntryType.VARIABLE
                if child.is_mapping():
                    for name_node, nid_node in child.pairs:
                        self._add_entry(library, entry_type, name_node, nid_node)
                elif not child.is_scalar():
                    raise _invalid(child, f"expecting {key} to be a mapping")

    def _add_entry(
        self, library: _Library, entry_type: EntryType, name_node: Node, nid_node: Node
    ) -> None:
        name = _key(name_node)
        try:
            nid = parse_u32(nid_node)
        except YamlError as exc:
            raise NidCheckFailed(CheckError.INVALID_FORMAT, str(exc)) from exc

        self._check_entry(library, entry_type, name, nid)

        if library.entries:
            previous = library.entries[-1]
            if previous.type == entry_type and previous.name > name:
                logger.info(
                    "Bad sort %s at line %d on %s::%s",
                    name,
                    name_node.line,
                    library.module.name,
                    library.name,
                )
                logger.info("Prev ent %s", previous.name)
                raise NidCheckFailed(
                    CheckError.BAD_SORT,
                    f"bad sort {name} after {previous.name} on "
                    f"{library.module.name}::{library.name}",
                )

        entry = _Entry(name, entry_type, nid, library)
        library.entries.append(entry)
        self._entries.append(entry)

    def _bypassed(self, library: _Library, name: str) -> bool:
        if self.permissive:
            return True
        bypass = self.bypass
        if bypass is None:
            return False
        for module in bypass.modules:
            if module.name != library.module.name:
                continue
            if not module.libraries:
                logger.debug(
                    "Module %s allowed same name in module level (%s)", module.name, name
                )
                return True
            for allowed in module.libraries:
                if allowed.name != library.name:
                    continue
                if not library.entries:
                    logger.debug(
                        "Module %s allowed same name in library level (%s)",
                        module.name,
                        name,
                    )
                    return True
                if any(entry.name == name for entry in library.entries):
                    logger.debug("Module %s allowed same name (%s)", module.name, name)
                    return True
        return False

    def _check_entry(
        self, library: _Library, entry_type: EntryType, name: str, nid: int
    ) -> None:
        where = f"{library.module.name}::{library.name}::{name}"
        for entry in library.entries:
            if entry.name == name:
                logger.info(
                    "%s (0x%08X) is has already in %s::%s::%s (0x%08X)",
                    name,
                    nid,
                    entry.module.name,
                    entry.library.name,
                    entry.name,
                    entry.nid,
                )
                raise NidCheckFailed(CheckError.DUPLICATE_NAME, f"{where} is duplicated")

        for entry in reversed(self._entries):
            if entry.name != name:
                continue
            other = f"{entry.module.name}::{entry.library.name}::{entry.name}"
            logger.debug(
                "[%-31s] %s::%s (nid=0x%08X %s %s) %s::%s (nid=0x%08X %s %s)",
                name,
                library.module.name,
                library.name,
                nid,
                library.locate.label,
                entry_type.label,
                entry.module.name,
                entry.library.name,
                entry.nid,
                entry.library.locate.label,
                entry.type.label,
            )
            if entry.type != entry_type:
                message = (
                    f"{where} has a type difference with {other} "
                    f"({entry_type.label} != {entry.type.label})"
                )
                logger.info("%s", message)
                raise NidCheckFailed(CheckError.DIFF_TYPE, message)

            bypassed = self._bypassed(library, name)

            if nid != entry.nid and library.module.name == entry.module.name and not bypassed:
                message = (
                    f"{where} has a NID difference with {other} "
                    f"(0x{nid:08X} != 0x{entry.nid:08X})"
                )
                logger.info("%s", message)
                raise NidCheckFailed(CheckError.DUPLICATE_NAME, message)

            if entry.library.locate == library.locate and not bypassed:
                message = (
                    f"{where} is has already in {entry.module.name}::{entry.library.name}"
                )
                logger.info("%s", message)
                raise NidCheckFailed(CheckError.DUPLICATE_NAME, message)


def _database_files(directory: Path) -> list[Path]:
    return sorted(path for path in directory.rglob("*") if path.is_file())


def check_database_dir(
    db_dir: _PathLike, bypass: Optional[NidCheckContext] = None
) -> list[Path]:
    """Check every version directory in ``db_dir``; return those checked.

    Plain files at the top level are ignored. The first version that fails
    stops the run with :class:`NidCheckFailed`.
    """
    top = Path(db_dir)
    try:
        children = sorted(top.iterdir())
    except OSError as exc:
        logger.info("failed to list %s", top)
        raise NidCheckFailed(CheckError.OPEN_FAILED, f"could not list {top}") from exc

    checked: list[Path] = []
    for child in children:
        if not child.is_dir():
            logger.info("ignored (%s)", child)
            continue
        logger.info("check (%s)", child)
        context = NidCheckContext(bypass)
        try:
            for path in _database_files(child):
                logger.debug("%s", path)
                context.add_database(path)
        except NidCheckFailed as exc:
            code = context.error if context.error is not None else exc.code
            logger.info("check failed (0x%X)", int(code))
            raise NidCheckFailed(code, f"{child}: {exc}") from exc
        logger.info("check completed")
        checked.append(child)
    return checked


def _find_item(args: list[str], name: str) -> Optional[str]:
    for arg in args:
        index = arg.find(name)
        if index >= 0:
            return arg[index + len(name):]
    return None


def main(argv: Optional[list[str]] = None) -> int:
    """Command entry point; return the process exit status."""
    args = sys.argv[1:] if argv is None else list(argv)
    dbg = _find_item(args, "-dbg=")
    bypass_path = _find_item(args, "-bypass=")
    db_dir = _find_item(args, "-dbdirver=")

    if not args or db_dir is None:
        print(
            "usage: vita-nid-check [-dbg=(debug|trace)] "
            "[-bypass=./path/to/bypass.yml] [-dbdirver=./path/to/db_dir]"
        )
        return 1

    level = {"debug": logging.INFO, "trace": logging.DEBUG}.get(dbg or "", logging.WARNING)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    previous_level = logger.level
    logger.addHandler(handler)
    logger.setLevel(level)
    try:
        bypass: Optional[NidCheckContext] = None
        if bypass_path is not None:
            logger.debug("bypass: %s", bypass_path)
            candidate = NidCheckContext(permissive=True)
            try:
                candidate.add_database(bypass_path)
            except NidCheckFailed:
                candidate = None
            if candidate is not None:
                candidate.permissive = False
                bypass = candidate
        try:
            check_database_dir(db_dir, bypass)
        except NidCheckFailed:
            return 1
        return 0
    finally:
        logger.removeHandler(handler)
        logger.setLevel(previous_level)