"""Pack a param.sfo, an eboot.bin and extra files into a VPK (zip) archive."""

from __future__ import annotations

import argparse
import os
import stat
import sys
import zipfile
from pathlib import Path
from typing import Iterable, Optional, Union

__all__ = ["parse_add_option", "add_to_zip", "pack_vpk", "main"]

DEFAULT_OUTPUT_FILE = "output.vpk"

_PathLike = Union[str, "os.PathLike[str]"]


def parse_add_option(value: str) -> Optional[tuple[str, str]]:
    """Split ``src=dst``; return None when there is no '=' or nothing after it."""
    src, sep, dst = value.partition("=")
    if not sep or not dst:
        return None
    return src, dst


def add_to_zip(zf: zipfile.ZipFile, src: _PathLike, dst: str) -> bool:
    """Add a file, or a directory recursively, to ``zf`` under ``dst``.

    Return False when ``src`` does not exist or is neither a file nor a directory.
    """
    try:
        info = os.stat(src)
    except OSError:
        return False
    if stat.S_ISDIR(info.st_mode):
        for name in sorted(os.listdir(src)):
            add_to_zip(zf, os.path.join(src, name), f"{dst}/{name}")
        return True
    if stat.S_ISREG(info.st_mode):
        zf.write(src, dst)
        return True
    return False


def pack_vpk(
    output: _PathLike,
    sfo: _PathLike,
    eboot: _PathLike,
    additional: Iterable[tuple[_PathLike, str]] = (),
) -> None:
    """Write the VPK archive; on failure no archive is left behind."""
    entries = [(sfo, "sce_sys/param.sfo"), (eboot, "eboot.bin"), *additional]
    path = Path(output)
    try:
        with zipfile.ZipFile(path, "w", zipfile.ZIP_DEFLATED) as zf:
            for src, dst in entries:
                if not add_to_zip(zf, src, dst):
                    raise FileNotFoundError(f"could not add '{src}' as '{dst}'")
    except BaseException:
        path.unlink(missing_ok=True)
        raise


def _usage(prog: str) -> str:
    return (
        f"Usage:\n\t{prog} [OPTIONS] output.vpk\n\n"
        "  -s, --sfo=param.sfo     sets the param.sfo file\n"
        "  -b, --eboot=eboot.bin   sets the eboot.bin file\n"
        "  -a, --add src=dst       adds the file or directory src to the vpk as dst\n"
        "  -h, --help              displays this help and exit\n"
    )


def main(argv: Optional[list[str]] = None) -> int:
    """Command entry point; return the process exit status."""
    prog = "vita-pack-vpk"
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print(_usage(prog), end="")
        return -1

    parser = argparse.ArgumentParser(prog=prog, add_help=False)
    parser.add_argument("-s", "--sfo")
    parser.add_argument("-b", "--eboot")
    parser.add_argument("-a", "--add", action="append", default=[])
    parser.add_argument("-h", "--help", action="store_true")
    parser.add_argument("rest", nargs="*")
    options, unknown = parser.parse_known_args(args)

    if options.help:
        print(_usage(prog), end="")
        return -1
    if not options.sfo:
        print(".sfo file missing.")
        return -1
    if not options.eboot:
        print(".bin file missing.")
        return -1

    additional = [pair for pair in map(parse_add_option, options.add) if pair]
    positional = options.rest + [arg for arg in unknown if not arg.startswith("-")]
    output = positional[0] if positional else DEFAULT_OUTPUT_FILE

    try:
        pack_vpk(output, options.sfo, options.eboot, additional)
    except OSError as exc:
        print(f"Error creating: '{output}': {exc}")
        return -1
    return 0