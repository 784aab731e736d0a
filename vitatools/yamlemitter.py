"""Event-by-event YAML writer for simple block mappings of plain scalars."""

from __future__ import annotations

import io

import yaml
from yaml.emitter import Emitter

from .yamltree import YamlError

__all__ = ["YamlEmitter"]

_MAP_TAG = "tag:yaml.org,2002:map"


class YamlEmitter:
    """Write a YAML stream one event at a time into an in-memory text buffer.

    The emitter holds back a few events to decide on layout, so the text
    returned by :meth:`getvalue` is only complete after :meth:`stream_end`.
    """

    def __init__(self) -> None:
        self._buffer = io.StringIO()
        self._emitter = Emitter(self._buffer)

    def _emit(self, event: yaml.Event) -> None:
        try:
            self._emitter.emit(event)
        except yaml.YAMLError as exc:
            raise YamlError(f"yaml: emitter error: {exc}") from exc

    def stream_start(self) -> None:
        self._emit(yaml.StreamStartEvent())

    def document_start(self) -> None:
        self._emit(yaml.DocumentStartEvent(explicit=False, version=None, tags=None))

    def mapping_start(self) -> None:
        self._emit(
            yaml.MappingStartEvent(
                anchor=None, tag=_MAP_TAG, implicit=True, flow_style=False
            )
        )

    def _scalar(self, text: str) -> None:
        self._emit(
            yaml.ScalarEvent(
                anchor=None, tag=None, implicit=(True, True), value=text, style=None
            )
        )

    def key(self, key: str) -> None:
        """Write a key whose value (usually a mapping) follows."""
        self._scalar(key)

    def key_value(self, key: str, value: str | None) -> None:
        """Write a key and, when ``value`` is not None, its plain scalar value."""
        self._scalar(key)
        if value is not None:
            self._scalar(value)

    def mapping_end(self) -> None:
        self._emit(yaml.MappingEndEvent())

    def document_end(self) -> None:
        self._emit(yaml.DocumentEndEvent(explicit=False))

    def stream_end(self) -> None:
        self._emit(yaml.StreamEndEvent())

    def getvalue(self) -> str:
        """Return the text written so far."""
        return self._buffer.getvalue()