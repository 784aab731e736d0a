import zipfile

import pytest

from vitatools.packvpk import add_to_zip, main, pack_vpk, parse_add_option


@pytest.fixture
def inputs(tmp_path):
    sfo = tmp_path / "param.sfo"
    sfo.write_bytes(b"SFO")
    eboot = tmp_path / "eboot.bin"
    eboot.write_bytes(b"BIN")
    extra = tmp_path / "extra"
    (extra / "sub").mkdir(parents=True)
    (extra / "a.txt").write_text("a")
    (extra / "sub" / "b.txt").write_text("b")
    return sfo, eboot, extra


@pytest.mark.parametrize(
    "value, expected",
    [
        ("src=dst", ("src", "dst")),
        ("a=b=c", ("a", "b=c")),
        ("nodst=", None),
        ("noequals", None),
    ],
)
def test_parse_add_option(value, expected):
    assert parse_add_option(value) == expected


def test_add_to_zip_missing_returns_false(tmp_path):
    with zipfile.ZipFile(tmp_path / "x.zip", "w") as zf:
        assert add_to_zip(zf, tmp_path / "missing", "m") is False
        assert zf.namelist() == []


def test_add_to_zip_directory_recurses(tmp_path, inputs):
    _, _, extra = inputs
    with zipfile.ZipFile(tmp_path / "x.zip", "w") as zf:
        assert add_to_zip(zf, extra, "data") is True
    with zipfile.ZipFile(tmp_path / "x.zip") as zf:
        assert sorted(zf.namelist()) == ["data/a.txt", "data/sub/b.txt"]
        assert zf.read("data/sub/b.txt") == b"b"


def test_pack_vpk_layout(tmp_path, inputs):
    sfo, eboot, extra = inputs
    out = tmp_path / "out.vpk"
    pack_vpk(out, sfo, eboot, [(extra / "a.txt", "x/a.txt")])
    with zipfile.ZipFile(out) as zf:
        assert zf.read("sce_sys/param.sfo") == b"SFO"
        assert zf.read("eboot.bin") == b"BIN"
        assert zf.read("x/a.txt") == b"a"


def test_pack_vpk_failure_leaves_no_file(tmp_path, inputs):
    sfo, _, _ = inputs
    out = tmp_path / "out.vpk"
    with pytest.raises(FileNotFoundError):
        pack_vpk(out, sfo, tmp_path / "nope.bin")
    assert not out.exists()


def test_main_without_arguments_fails(capsys):
    assert main([]) == -1
    assert "Usage" in capsys.readouterr().out


def test_main_missing_sfo(capsys, inputs):
    _, eboot, _ = inputs
    assert main(["-b", str(eboot), "out.vpk"]) == -1
    assert ".sfo file missing." in capsys.readouterr().out


def test_main_missing_eboot(capsys, inputs):
    sfo, _, _ = inputs
    assert main(["-s", str(sfo), "out.vpk"]) == -1
    assert ".bin file missing." in capsys.readouterr().out


def test_main_help(capsys):
    assert main(["-h"]) == -1
    assert "--sfo" in capsys.readouterr().out


def test_main_success_with_add(tmp_path, inputs):
    sfo, eboot, extra = inputs
    out = tmp_path / "game.vpk"
    status = main(
        ["-s", str(sfo), "-b", str(eboot), "-a", f"{extra}=data", str(out)]
    )
    assert status == 0
    with zipfile.ZipFile(out) as zf:
        assert sorted(zf.namelist()) == [
            "data/a.txt",
            "data/sub/b.txt",
            "eboot.bin",
            "sce_sys/param.sfo",
        ]


def test_main_default_output(tmp_path, inputs, monkeypatch):
    sfo, eboot, _ = inputs
    monkeypatch.chdir(tmp_path)
    assert main(["--sfo", str(sfo), "--eboot", str(eboot)]) == 0
    assert (tmp_path / "output.vpk").is_file()


def test_main_missing_input_reports_error(tmp_path, inputs, capsys):
    sfo, _, _ = inputs
    out = tmp_path / "bad.vpk"
    assert main(["-s", str(sfo), "-b", str(tmp_path / "none"), str(out)]) == -1
    assert "Error creating" in capsys.readouterr().out
    assert not out.exists()