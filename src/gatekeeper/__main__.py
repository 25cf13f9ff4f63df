"""Module entrypoint for ``python -m gatekeeper``."""

from __future__ import annotations

from gatekeeper.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
