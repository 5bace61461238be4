"""Module entrypoint for ``python -m proto_toolchain``."""

from __future__ import annotations

from proto_toolchain.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
