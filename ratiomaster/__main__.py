"""Entry point for ``python -m ratiomaster``."""

from __future__ import annotations

from ratiomaster.cli.main import main

if __name__ == "__main__":
    main()
