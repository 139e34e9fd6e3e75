"""Module execution entry point (``python -m tile_upscaler``)."""

from __future__ import annotations

from .cli import main


if __name__ == "__main__":  # pragma: no cover
    main()
