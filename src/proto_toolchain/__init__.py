"""
proto-toolchain package root.

File: src/proto_toolchain/__init__.py

Purpose
- Fetch protobuf schema sources (BSR modules, git subdirectories, or a whole
  multi-module workspace), write a ``buf.gen.yaml`` template, and drive
  ``buf generate`` with precise ``--path`` filters.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
