"""A small positional YAML tree built from parser events, plus scalar helpers."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import IO, Callable, Iterator, Union

import yaml

__all__ = [
    "YamlError",
    "NodeKind",
    "Node",
    "parse_yaml_stream",
    "node_type_str",
    "iterate_mapping",
    "iterate_sequence",
    "parse_u32",
    "parse_bool",
    "parse_string",
]

_ULONG_MAX = 2**64 - 1
_U32_MASK = 0xFFFFFFFF
_C_SPACE = " \t\n\v\f\r"


class YamlError(ValueError):
    """Raised when a YAML stream or node cannot be read as expected."""


class NodeKind(enum.Enum):
    SCALAR = "scalar"
    MAPPING = "mapping"
    SEQUENCE = "sequence"


@dataclass
class Node:
    """A YAML node with its zero-based source position.

    Scalars keep their text in ``value``; mappings keep ``(key, value)`` node
    pairs in document order in ``pairs``; sequences keep their nodes in ``items``.
    """

    kind: NodeKind
    line: int = 0
    column: int = 0
    value: str = ""
    pairs: list[tuple["Node", "Node"]] = field(default_factory=list)
    items: list["Node"] = field(default_factory=list)

    def is_scalar(self) -> bool:
        return self.kind is NodeKind.SCALAR

    def is_mapping(self) -> bool:
        return self.kind is NodeKind.MAPPING

    def is_sequence(self) -> bool:
        return self.kind is NodeKind.SEQUENCE


def _describe_error(exc: yaml.YAMLError) -> str:
    kinds = (
        (yaml.scanner.ScannerError, "scanner error"),
        (yaml.parser.ParserError, "parser error"),
        (yaml.composer.ComposerError, "composer error"),
    )
    if isinstance(exc, yaml.MarkedYAMLError):
        label = next((name for cls, name in kinds if isinstance(exc, cls)), "error")
        mark = exc.problem_mark
        if mark is not None:
            return (
                f"yaml: {label}: '{exc.problem}' at line {mark.line}, "
                f"column {mark.column}."
            )
        return f"yaml: {label}: '{exc.problem}'."
    if isinstance(exc, yaml.reader.ReaderError):
        return f"yaml: reader error: {exc}"
    return f"yaml: {exc}"


def _event_name(event: object) -> str:
    return type(event).__name__ if event is not None else "end of input"


def _next_event(events: Iterator[yaml.Event]) -> yaml.Event | None:
    return next(events, None)


def _build_node(event: yaml.Event | None, events: Iterator[yaml.Event]) -> Node:
    if isinstance(event, yaml.AliasEvent):
        raise YamlError("yamltree: there is no support for aliases implemented.")
    if event is None:
        raise YamlError("yamltree: unexpected end of input while reading a node.")
    mark = event.start_mark
    if isinstance(event, yaml.ScalarEvent):
        return Node(NodeKind.SCALAR, mark.line, mark.column, value=event.value)
    if isinstance(event, yaml.SequenceStartEvent):
        node = Node(NodeKind.SEQUENCE, mark.line, mark.column)
        while not isinstance(ev := _next_event(events), yaml.SequenceEndEvent):
            node.items.append(_build_node(ev, events))
        return node
    if isinstance(event, yaml.MappingStartEvent):
        node = Node(NodeKind.MAPPING, mark.line, mark.column)
        while not isinstance(ev := _next_event(events), yaml.MappingEndEvent):
            key = _build_node(ev, events)
            value = _build_node(_next_event(events), events)
            node.pairs.append((key, value))
        return node
    raise YamlError(f"yamltree: unexpected event '{_event_name(event)}'.")


def parse_yaml_stream(stream: Union[str, bytes, IO]) -> list[Node]:
    """Parse every document of a YAML stream into a list of root nodes."""
    try:
        events = iter(list(yaml.parse(stream, Loader=yaml.SafeLoader)))
    except yaml.YAMLError as exc:
        raise YamlError(_describe_error(exc)) from exc

    first = _next_event(events)
    if not isinstance(first, yaml.StreamStartEvent):
        raise YamlError(
            f"yamltree: expecting StreamStartEvent got '{_event_name(first)}'."
        )

    documents: list[Node] = []
    while not isinstance(event := _next_event(events), yaml.StreamEndEvent):
        if not isinstance(event, yaml.DocumentStartEvent):
            raise YamlError(
                f"yamltree: expecting DocumentStartEvent got '{_event_name(event)}'."
            )
        root = _build_node(_next_event(events), events)
        end = _next_event(events)
        if not isinstance(end, yaml.DocumentEndEvent):
            raise YamlError(
                f"yamltree: expecting DocumentEndEvent got '{_event_name(end)}'."
            )
        documents.append(root)
    return documents


def node_type_str(node: Node) -> str:
    """Return the kind name of a node: 'scalar', 'mapping' or 'sequence'."""
    return node.kind.value


def iterate_mapping(node: Node, functor: Callable[[Node, Node], object]) -> None:
    """Call ``functor(key, value)`` for each pair of a mapping node, in order."""
    if not node.is_mapping():
        raise YamlError(
            f"line: {node.line}, column: {node.column}, expecting a mapping, "
            f"got '{node_type_str(node)}'."
        )
    for key, value in node.pairs:
        functor(key, value)


def iterate_sequence(node: Node, functor: Callable[[Node], object]) -> None:
    """Call ``functor(entry)`` for each entry of a sequence node, in order."""
    if not node.is_sequence():
        raise YamlError(
            f"line: {node.line}, column: {node.column}, expecting a sequence, "
            f"got '{node_type_str(node)}'."
        )
    for entry in node.items:
        functor(entry)


def _require_scalar(node: Node) -> str:
    if not node.is_scalar():
        raise YamlError(
            f"line: {node.line}, column: {node.column}, expecting a scalar, "
            f"got '{node_type_str(node)}'."
        )
    return node.value


def _strtoul(text: str) -> tuple[int, str]:
    """Parse like C ``strtoul(text, &end, 0)``; return value and unparsed rest."""
    pos = 0
    while pos < len(text) and text[pos] in _C_SPACE:
        pos += 1
    negative = False
    if pos < len(text) and text[pos] in "+-":
        negative = text[pos] == "-"
        pos += 1

    rest = text[pos:]
    if rest[:2].lower() == "0x" and rest[2:3] and rest[2] in "0123456789abcdefABCDEF":
        base, pos = 16, pos + 2
        digits = "0123456789abcdefABCDEF"
    elif rest[:1] == "0":
        base, digits = 8, "01234567"
    else:
        base, digits = 10, "0123456789"

    start = pos
    while pos < len(text) and text[pos] in digits:
        pos += 1
    if pos == start:
        return 0, text

    magnitude = int(text[start:pos], base)
    if magnitude > _ULONG_MAX:
        return _ULONG_MAX, text[pos:]
    value = (-magnitude) & _ULONG_MAX if negative else magnitude
    return value, text[pos:]


def parse_u32(node: Node) -> int:
    """Read a scalar as an unsigned 32-bit integer (decimal, 0x hex or 0 octal)."""
    text = _require_scalar(node)
    value, rest = _strtoul(text)
    if rest:
        raise YamlError(
            f"line: {node.line}, column: {node.column}, could not convert "
            f"'{text}' to 32 bit integer."
        )
    return value & _U32_MASK


def parse_bool(node: Node) -> bool:
    """Read a scalar that is exactly 'true' or 'false'."""
    text = _require_scalar(node)
    if text == "true":
        return True
    if text == "false":
        return False
    raise YamlError(
        f"line: {node.line}, column: {node.column}, could not convert '{text}' "
        "to boolean, expected 'true' or 'false'."
    )


def parse_string(node: Node) -> str:
    """Return the text of a scalar node."""
    return _require_scalar(node)