"""Generate assembly stubs and build files for import libraries."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Iterable, Optional, Union

from .imports import ImportLibrary, ImportModule, Imports, ImportsError, load_imports

__all__ = ["generate_assembly", "generate_makefile", "generate_cmake", "main"]

KERNEL_LIBS_STUB = "SceKernel"

_PathLike = Union[str, Path]

_MAKEFILE_HEADER = (
    "ifdef VITASDK\n"
    "PREFIX = $(VITASDK)/bin/\n"
    "endif\n\n"
    "ARCH ?= $(PREFIX)arm-vita-eabi\n"
    "AS = $(ARCH)-as\n"
    "AR = $(ARCH)-ar\n"
    "RANLIB = $(ARCH)-ranlib\n\n"
    "TARGETS ="
)

_MAKEFILE_TRAILER = (
    "ALL_OBJS=\n\n"
    "all: $(TARGETS) $(TARGETS_WEAK)\n\n"
    "define LIBRARY_template\n"
    " $(1): $$($(1:lib%_stub.a=%)_OBJS)\n"
    " ALL_OBJS += $$($(1:lib%_stub.a=%)_OBJS)\n"
    "endef\n"
    "define LIBRARY_WEAK_template\n"
    " $(1): $$($(1:lib%_stub_weak.a=%)_weak_OBJS)\n"
    " ALL_OBJS += $$($(1:lib%_stub_weak.a=%)_weak_OBJS)\n"
    "endef\n\n"
    "$(foreach library,$(TARGETS),$(eval $(call LIBRARY_template,$(library))))\n"
    "$(foreach library,$(TARGETS_WEAK),$(eval $(call LIBRARY_WEAK_template,$(library))))\n\n"
    "install: $(TARGETS) $(TARGETS_WEAK)\n"
    "\tcp $(TARGETS) $(VITASDK)/arm-vita-eabi/lib\n"
    "\tcp $(TARGETS_WEAK) $(VITASDK)/arm-vita-eabi/lib\n\n"
    "clean:\n"
    "\trm -f $(TARGETS) $(TARGETS_WEAK) $(ALL_OBJS)\n\n"
    "$(TARGETS) $(TARGETS_WEAK):\n"
    "\t@echo \"$?\" > $@-objs\n"
    "\t$(AR) cru $@ @$@-objs\n"
    "\t$(RANLIB) $@\n\n"
    "%.o: %.S\n"
    "\t$(AS) --defsym GEN_WEAK_EXPORTS=0 $< -o $@\n\n"
    "%.wo: %.S\n"
    "\t$(AS) --defsym GEN_WEAK_EXPORTS=1 $< -o $@\n"
)

_CMAKE_HEADER = (
    "cmake_minimum_required(VERSION 2.8)\n\n"
    "if(NOT DEFINED CMAKE_TOOLCHAIN_FILE)\n"
    "\tif(DEFINED ENV{VITASDK})\n"
    "\t\tset(CMAKE_TOOLCHAIN_FILE \"$ENV{VITASDK}/share/vita.toolchain.cmake\" "
    "CACHE PATH \"toolchain file\")\n"
    "\telse()\n"
    "\t\tmessage(FATAL_ERROR \"Please define VITASDK to point to your SDK path!\")\n"
    "\tendif()\n"
    "endif()\n"
    "project(vitalibs)\n"
    "enable_language(ASM)\n\n"
)

_CMAKE_USER_FOREACH = (
    "foreach(library ${USER_LIBRARIES})\n"
    "\tadd_library(${library}_stub STATIC ${${library}_ASM})\n"
    "\ttarget_compile_definitions(${library}_stub PRIVATE -DGEN_WEAK_EXPORTS=0)\n"
    "\tadd_library(${library}_stub_weak STATIC ${${library}_ASM})\n"
    "\ttarget_compile_definitions(${library}_stub_weak PRIVATE -DGEN_WEAK_EXPORTS=1)\n"
    "endforeach(library)\n\n"
)

_CMAKE_KERNEL_FOREACH = (
    "foreach(library ${KERNEL_LIBRARIES})\n"
    "\tadd_library(${library}_stub STATIC ${${library}_ASM})\n"
    "\ttarget_compile_definitions(${library}_stub PRIVATE -DGEN_WEAK_EXPORTS=0)\n"
    "\tinstall(TARGETS ${library}_stub DESTINATION $ENV{VITASDK}/arm-vita-eabi/lib/)\n"
    "endforeach(library)\n\n"
)


def _stub_name(module: str, library: str, symbol: str, postfix: str) -> str:
    return f"{module}_{library}_{symbol}{postfix}"


def _stub_source(library: ImportLibrary, name: str, nid: int, is_function: bool) -> str:
    version = (library.flags >> 16) & 0xFFFF
    section = "fstubs" if is_function else "vstubs"
    attrs = '"ax"' if is_function else '""'
    kind = "%function" if is_function else "%object"
    return (
        ".arch armv7a\n\n"
        f".section .vitalink.{section}.{library.name},{attrs},%progbits\n\n"
        "\t.align 4\n"
        f"\t.global {name}\n"
        f"\t.type {name}, {kind}\n"
        f"{name}:\n"
        ".if GEN_WEAK_EXPORTS\n"
        f"\t.word 0x{version:04X}0008\n"
        ".else\n"
        f"\t.word 0x{version:04X}0000\n"
        ".endif //GEN_WEAK_EXPORTS\n"
        f"\t.word 0x{library.nid & 0xFFFFFFFF:08X}\n"
        f"\t.word 0x{nid & 0xFFFFFFFF:08X}\n"
        "\t.align 4\n\n"
    )


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8", newline="\n")
    return path


def generate_assembly(imports_list: Iterable[Imports], outdir: _PathLike) -> list[Path]:
    """Write one ``.S`` stub per imported function and variable; return the paths."""
    out = Path(outdir)
    written = []
    for imp in imports_list:
        for module in imp.modules:
            for library in module.libraries:
                for stubs, is_function in ((library.functions, True), (library.variables, False)):
                    for stub in stubs:
                        name = _stub_name(module.name, library.name, stub.name, imp.postfix)
                        source = _stub_source(library, stub.name, stub.nid, is_function)
                        written.append(_write(out / f"{name}.S", source))
    return written


def _has_symbols(library: ImportLibrary) -> bool:
    return bool(library.functions or library.variables)


def _symbol_names(library: ImportLibrary) -> list[str]:
    return [stub.name for stub in (*library.functions, *library.variables)]


def generate_makefile(imports_list: Iterable[Imports], outdir: _PathLike) -> Path:
    """Write a Makefile that builds static stub archives; return its path."""
    imports_list = list(imports_list)
    out: list[str] = [_MAKEFILE_HEADER]
    kernel_objs: list[str] = []

    def write_symbol(symbol: str, is_kernel: bool) -> None:
        if is_kernel:
            kernel_objs.append(symbol)
        out.append(symbol)

    for imp in imports_list:
        for module in imp.modules:
            out.append(f" lib{module.name}{imp.postfix}_stub.a")
            out.extend(
                f" lib{library.name}{imp.postfix}_stub.a"
                for library in module.libraries
                if library.is_kernel
            )

    out.append("\nTARGETS_WEAK =")
    for imp in imports_list:
        out.extend(f" lib{module.name}{imp.postfix}_stub_weak.a" for module in imp.modules)
    out.append("\n\n")

    for imp in imports_list:
        postfix = imp.postfix
        for module in imp.modules:
            is_special = module.name == KERNEL_LIBS_STUB
            for weak in (False, True):
                if not is_special:
                    suffix = "_weak_OBJS" if weak else "_OBJS"
                    out.append(f"{module.name}{postfix}{suffix} =")
                for library in module.libraries:
                    if library.is_kernel or not _has_symbols(library):
                        continue
                    ext = "wo" if weak else "o"
                    for symbol in _symbol_names(library):
                        name = _stub_name(module.name, library.name, symbol, postfix)
                        write_symbol(f" {name}.{ext}", is_special)
                if not is_special:
                    out.append("\n")

            for library in module.libraries:
                if not library.is_kernel or not _has_symbols(library):
                    continue
                out.append(f"{library.name}{postfix}_OBJS =")
                for symbol in _symbol_names(library):
                    name = _stub_name(module.name, library.name, symbol, postfix)
                    write_symbol(f" {name}.o", True)
                out.append("\n")

    out.append(f"{KERNEL_LIBS_STUB}_OBJS ={''.join(kernel_objs)}\n")
    out.append(_MAKEFILE_TRAILER)
    return _write(Path(outdir) / "Makefile", "".join(out))


def _cmake_sources(module: str, postfix: str, library: ImportLibrary) -> str:
    return "".join(
        f'\t"{_stub_name(module, library.name, symbol, postfix)}.S"\n'
        for symbol in _symbol_names(library)
    )


def _cmake_user(postfix: str, module: ImportModule) -> Optional[str]:
    user_libs = [library for library in module.libraries if not library.is_kernel]
    if not user_libs:
        return None
    body = "".join(_cmake_sources(module.name, postfix, library) for library in user_libs)
    return f"set({module.name}{postfix}_ASM\n{body})\n\n"


def _cmake_kernel(module_name: str, postfix: str, library: ImportLibrary) -> Optional[str]:
    if not _has_symbols(library):
        return None
    body = _cmake_sources(module_name, postfix, library)
    return f"set({library.name}{postfix}_ASM\n{body})\n\n"


def _cmake_list(name: str, entries: list[str]) -> str:
    return f"set({name}\n" + "".join(f'\t"{entry}"\n' for entry in entries) + ")\n\n"


def generate_cmake(imports_list: Iterable[Imports], outdir: _PathLike) -> Path:
    """Write a CMakeLists.txt that builds static stub archives; return its path."""
    out = [_CMAKE_HEADER]
    user_libs: list[str] = []
    kernel_libs: list[str] = []

    for imp in imports_list:
        for module in imp.modules:
            user = _cmake_user(imp.postfix, module)
            if user is not None:
                out.append(user)
                user_libs.append(f"{module.name}{imp.postfix}")
            for library in module.libraries:
                if not library.is_kernel:
                    continue
                kernel = _cmake_kernel(module.name, imp.postfix, library)
                if kernel is not None:
                    out.append(kernel)
                    kernel_libs.append(f"{library.name}{imp.postfix}")

    if user_libs:
        out.append(_cmake_list("USER_LIBRARIES", user_libs))
    if kernel_libs:
        out.append(_cmake_list("KERNEL_LIBRARIES", kernel_libs))
    if user_libs:
        out.append(_CMAKE_USER_FOREACH)
    if kernel_libs:
        out.append(_CMAKE_KERNEL_FOREACH)
    return _write(Path(outdir) / "CMakeLists.txt", "".join(out))


_USAGE = (
    "usage: vita-libs-gen [-c] nids.yml [extra.yml ...] output-dir\n"
    "\t-c: Generate CMakeLists.txt instead of a Makefile\n"
)


def main(argv: Optional[list[str]] = None) -> int:
    """Command entry point; return the process exit status."""
    args = sys.argv[1:] if argv is None else list(argv)
    cmake = bool(args) and args[0] == "-c"
    if cmake:
        args = args[1:]
    if len(args) < 2:
        sys.stderr.write(_USAGE)
        return 1

    *inputs, outdir = args
    try:
        imports_list = [load_imports(path) for path in inputs]
    except ImportsError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    out = Path(outdir)
    try:
        out.mkdir(exist_ok=True)
    except OSError:
        pass
    if not out.is_dir():
        print(f"{outdir}: not a directory", file=sys.stderr)
        return 1

    try:
        generate_assembly(imports_list, out)
    except OSError:
        print("Error generating the assembly file", file=sys.stderr)
        return 1
    try:
        if cmake:
            generate_cmake(imports_list, out)
        else:
            generate_makefile(imports_list, out)
    except OSError:
        print("Error generating the assembly makefile", file=sys.stderr)
        return 1
    return 0