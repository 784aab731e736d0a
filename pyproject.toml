[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "vitatools"
version = "0.1.0"
description = "Homebrew build tools: NID database reading and checking, stub library generation, SFO writing and VPK packing"
requires-python = ">=3.10"
keywords = ["homebrew", "nid", "sfo", "vpk", "stubs", "toolchain", "yaml"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Build Tools",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
vita-libs-gen = "vitatools.libsgen:main"
vita-mksfoex = "vitatools.mksfo:main"
vita-nid-check = "vitatools.nidcheck:main"
vita-pack-vpk = "vitatools.packvpk:main"

[tool.hatch.build.targets.wheel]
packages = ["vitatools"]

[tool.pytest.ini_options]
addopts = "-ra"
