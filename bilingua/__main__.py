"""Module entrypoint for running Bilingua as ``python -m bilingua``."""

from __future__ import annotations

from bilingua.cli import main


if __name__ == "__main__":
    main()
