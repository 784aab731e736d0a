import pytest

from vitatools.yamlemitter import YamlEmitter
from vitatools.yamltree import YamlError, parse_yaml_stream


def _open(emitter):
    emitter.stream_start()
    emitter.document_start()
    emitter.mapping_start()


def _close(emitter):
    emitter.mapping_end()
    emitter.document_end()
    emitter.stream_end()


def test_single_pair():
    emitter = YamlEmitter()
    _open(emitter)
    emitter.key_value("a", "1")
    _close(emitter)
    assert emitter.getvalue() == "a: 1\n"


def test_nested_mapping_round_trip():
    emitter = YamlEmitter()
    _open(emitter)
    emitter.key_value("version", "2")
    emitter.key("modules")
    emitter.mapping_start()
    emitter.key("SceLibKernel")
    emitter.mapping_start()
    emitter.key_value("nid", "0xCAE9ACE6")
    emitter.mapping_end()
    emitter.mapping_end()
    _close(emitter)

    docs = parse_yaml_stream(emitter.getvalue())
    assert len(docs) == 1
    root = docs[0]
    assert [k.value for k, _ in root.pairs] == ["version", "modules"]
    assert root.pairs[0][1].value == "2"
    modules = root.pairs[1][1]
    assert modules.is_mapping()
    name, body = modules.pairs[0]
    assert name.value == "SceLibKernel"
    assert body.pairs[0][0].value == "nid"
    assert body.pairs[0][1].value == "0xCAE9ACE6"


def test_order_is_preserved():
    emitter = YamlEmitter()
    _open(emitter)
    keys = ["zeta", "alpha", "mid"]
    for key in keys:
        emitter.key_value(key, key.upper())
    _close(emitter)
    root = parse_yaml_stream(emitter.getvalue())[0]
    assert [(k.value, v.value) for k, v in root.pairs] == [
        (k, k.upper()) for k in keys
    ]


def test_key_without_value_then_mapping():
    emitter = YamlEmitter()
    _open(emitter)
    emitter.key_value("outer", None)
    emitter.mapping_start()
    emitter.key_value("inner", "x")
    emitter.mapping_end()
    _close(emitter)
    root = parse_yaml_stream(emitter.getvalue())[0]
    assert root.pairs[0][1].pairs[0][1].value == "x"


def test_event_before_stream_start_raises():
    emitter = YamlEmitter()
    with pytest.raises(YamlError):
        emitter.key_value("a", "1")