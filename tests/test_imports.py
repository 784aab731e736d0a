import logging

import pytest

from vitatools.imports import (
    ImportLibrary,
    ImportModule,
    Imports,
    ImportsError,
    ImportStub,
    load_imports,
    loads_imports,
)

SAMPLE = """\
version: 2
firmware: 3.65
modules:
  SceLibKernel:
    nid: 0xCAE9ACE6
    libraries:
      SceLibKernel:
        kernel: false
        nid: 0xCAE9ACE6
        version: 2
        functions:
          sceKernelGetThreadId: 0x0FB972F9
          sceKernelExitProcess: 0x7595D9AA
        variables:
          __stack_chk_guard: 0x4458BCF3
      SceThreadmgrForDriver:
        kernel: true
        nid: 0xE2C40624
        functions:
          sceKernelGetThreadId: 0x59D06540
"""


@pytest.fixture
def sample():
    return loads_imports(SAMPLE)


def test_modules_and_libraries(sample):
    assert [m.name for m in sample.modules] == ["SceLibKernel"]
    module = sample.modules[0]
    assert module.nid == 0xCAE9ACE6
    assert [lib.name for lib in module.libraries] == [
        "SceLibKernel",
        "SceThreadmgrForDriver",
    ]
    user, kernel = module.libraries
    assert user.is_kernel is False
    assert kernel.is_kernel is True
    assert user.functions == [
        ImportStub("sceKernelGetThreadId", 0x0FB972F9),
        ImportStub("sceKernelExitProcess", 0x7595D9AA),
    ]
    assert user.variables == [ImportStub("__stack_chk_guard", 0x4458BCF3)]


def test_version_goes_into_flags_high_half(sample):
    user, kernel = sample.modules[0].libraries
    assert user.flags >> 16 == 2
    assert user.flags & 0xFFFF == 0
    assert kernel.flags == 0


def test_firmware_postfix(sample):
    assert sample.firmware == "3.65"
    assert sample.postfix == "_365"


def test_default_firmware_is_skipped():
    imports = loads_imports("firmware: 3.60\nmodules: {}\n")
    assert imports.firmware is None
    assert imports.postfix == ""
    assert imports.modules == []


def test_find_helpers(sample):
    module = sample.find_module(0xCAE9ACE6)
    assert module is sample.modules[0]
    library = module.find_library(0xE2C40624)
    assert library.name == "SceThreadmgrForDriver"
    assert library.find_function(0x59D06540).name == "sceKernelGetThreadId"
    user = module.find_library(0xCAE9ACE6)
    assert user.find_variable(0x4458BCF3).name == "__stack_chk_guard"
    assert user.find_function(0x4458BCF3) is None
    assert sample.find_module(0) is None


def test_find_returns_first_match():
    first = ImportStub("a", 5)
    library = ImportLibrary("lib", functions=[first, ImportStub("b", 5)])
    assert library.find_function(5) is first
    module = ImportModule("m", libraries=[library])
    assert Imports(modules=[module]).find_module(0) is module


def test_version_too_large():
    text = "modules:\n  M:\n    libraries:\n      L:\n        version: 65536\n"
    with pytest.raises(ImportsError, match="65535"):
        loads_imports(text)


def test_unknown_library_key():
    text = "modules:\n  M:\n    libraries:\n      L:\n        bogus: 1\n"
    with pytest.raises(ImportsError, match="bogus"):
        loads_imports(text)


def test_unknown_module_key():
    with pytest.raises(ImportsError, match="unrecognised module key"):
        loads_imports("modules:\n  M:\n    other: 1\n")


def test_bad_function_nid():
    text = (
        "modules:\n  M:\n    libraries:\n      L:\n"
        "        functions:\n          f: nothex\n"
    )
    with pytest.raises(ImportsError, match="nothex"):
        loads_imports(text)


def test_function_value_must_be_scalar():
    text = (
        "modules:\n  M:\n    libraries:\n      L:\n"
        "        functions:\n          f: [1, 2]\n"
    )
    with pytest.raises(ImportsError, match="sequence"):
        loads_imports(text)


def test_bad_kernel_flag():
    text = "modules:\n  M:\n    libraries:\n      L:\n        kernel: maybe\n"
    with pytest.raises(ImportsError, match="maybe"):
        loads_imports(text)


def test_root_must_be_mapping():
    with pytest.raises(ImportsError, match="root node"):
        loads_imports("- a\n- b\n")


def test_root_must_not_be_empty():
    with pytest.raises(ImportsError, match="at least one entry"):
        loads_imports("{}\n")


def test_single_document_required():
    with pytest.raises(ImportsError, match="single yaml document"):
        loads_imports("a: 1\n---\nb: 2\n")


def test_firmware_must_be_scalar():
    with pytest.raises(ImportsError):
        loads_imports("firmware:\n  x: 1\n")


def test_syntax_error_is_imports_error():
    with pytest.raises(ImportsError):
        loads_imports("a: [1, 2\n")


def test_unknown_top_level_tag_warns(caplog):
    with caplog.at_level(logging.WARNING, logger="vitatools.imports"):
        imports = loads_imports("strange: 1\nmodules:\n  M:\n    nid: 7\n")
    assert imports.modules[0].nid == 7
    assert "strange" in caplog.text


def test_load_from_file(tmp_path):
    path = tmp_path / "db.yml"
    path.write_text(SAMPLE, encoding="utf-8")
    assert load_imports(path) == loads_imports(SAMPLE)


def test_load_missing_file(tmp_path):
    with pytest.raises(ImportsError, match="could not open"):
        load_imports(tmp_path / "missing.yml")