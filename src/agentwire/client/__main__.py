"""Module entrypoint for `python -m agentwire.client`."""

from __future__ import annotations

from agentwire.client.cli import run


if __name__ == "__main__":
    run()
