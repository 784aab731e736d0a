# vitatools

Command-line tools and a small library for homebrew builds. They read NID
databases written in YAML and generate assembly stub libraries from them. They
also check the databases for conflicts, write `param.sfo` files and pack
`.vpk` archives.

## Installation

```
pip install .
```

## Commands

Each command returns a non-zero exit status on failure.

### vita-libs-gen

Reads one or more import databases. For each imported function and variable it
writes one `.S` assembly stub into the output directory, creating the directory
if needed. It then writes a `Makefile` there, or with `-c` a `CMakeLists.txt`.
Either file builds normal and weak stub archives.

```
vita-libs-gen [-c] nids.yml [extra.yml ...] output-dir
```

If a database sets a `firmware` other than `3.60`, every generated name gets a
postfix built from it. For example, `3.65` gives `_365`.

### vita-mksfoex

Writes a `param.sfo` file. It starts from a set of default entries, then
applies your overrides and additions in the order you give them. The title
sets both `TITLE` and `STITLE`.

```
vita-mksfoex [-d NAME=VALUE] [-s NAME=STR] TITLE output.sfo
```

- `-d NAME=VALUE` (`--dword`) sets an integer entry. The value may be decimal,
  `0x` hexadecimal or `0`-prefixed octal.
- `-s NAME=STR` (`--string`) sets a string entry.
- `-e` (`--empty`) is accepted but has no effect. A title is always required.

### vita-nid-check

Checks a directory of NID databases. Each sub-directory is treated as one
database version, and all files below it are loaded together. Plain files at
the top level are ignored.

Each function or variable entry must meet these rules:

- its name is unique within its library;
- its name is in sorted order after the entry before it;
- it has the same type (function or variable) wherever the name appears;
- it has the same NID within a module;
- its name is unique within user or kernel space.

A bypass database can allow repeated names for chosen modules or libraries.

```
vita-nid-check -dbdirver=./path/to/db_dir [-bypass=./path/to/bypass.yml] [-dbg=debug|trace]
```

`-dbg=debug` prints progress and rule failures. `-dbg=trace` also prints every
file and every name comparison.

### vita-pack-vpk

Packs an SFO, an eboot and any extra files or directories into a `.vpk` zip
archive. The SFO is stored as `sce_sys/param.sfo` and the eboot as
`eboot.bin`. The output name defaults to `output.vpk`. If any input is
missing, no archive is left behind.

```
vita-pack-vpk -s param.sfo -b eboot.bin [-a src=dst ...] [output.vpk]
```

## Library use

```python
from vitatools.imports import load_imports
from vitatools.exportsio import load_exports, format_module_tree
from vitatools.mksfo import default_entries, add_string, build_sfo

imports = load_imports("db.yml")
module = imports.find_module(0x12345678)

exports = load_exports("exports.yml", "app.elf")
print(format_module_tree(exports))

entries = default_entries()
add_string(entries, "TITLE_ID=ABCD00001")
data = build_sfo(entries)
```

The library modules are:

- `vitatools.imports` reads import databases into `Imports`, `ImportModule`,
  `ImportLibrary` and `ImportStub` objects. Failures raise `ImportsError`.
- `vitatools.exports` reads module export configurations into
  `ModuleExports`, `LibraryExport` and `ExportSymbol` objects. Failures raise
  `ExportsError`. Its `sha256_32` computes NIDs from names.
- `vitatools.exportsio` loads export configurations from text or files. The
  module NID defaults to the hash of the ELF file. It can also build a default
  configuration with `generate_default_exports` and print a summary with
  `format_module_tree`.
- `vitatools.yamltree` is the YAML node tree the readers use. It keeps line
  and column positions so that error messages can point at the input.
  `parse_u32`, `parse_bool` and `parse_string` read scalar values.
- `vitatools.yamlemitter` writes block-style YAML mappings of plain scalars
  with `YamlEmitter`.

## What is not included

This package works only with YAML databases, text build files, SFO files and
zip archives. It does not read or link ELF executables, and it does not produce
executable images (eboot files) from them. You must build those with other
tools before you pack them with `vita-pack-vpk`.

## Tests

```
pip install .[test]
pytest
```