#!/usr/bin/env python3
"""Entry script for the tile upscaler pipeline."""

from __future__ import annotations

from tile_upscaler.cli import main


if __name__ == "__main__":
    main()
