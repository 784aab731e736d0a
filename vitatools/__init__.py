"""Homebrew build tools: NID database reading and checking, stub library generation, SFO writing and VPK packing."""

__version__ = "0.1.0"