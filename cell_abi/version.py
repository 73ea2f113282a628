"""
Package version.

Resolved once, first match wins:

1. ``CELL_ABI_VERSION`` (pinned builds, CI)
2. metadata of the installed ``cell-abi`` distribution
3. ``BASE_VERSION + "+dev"`` for a source checkout
"""

from __future__ import annotations

import os
from importlib import metadata

# Bump when ids or the canonical cell layout change.
BASE_VERSION = "0.1.0"
DIST_NAME = "cell-abi"


def compute_version() -> str:
    pinned = os.getenv("CELL_ABI_VERSION", "").strip()
    if pinned:
        return pinned
    try:
        installed = metadata.version(DIST_NAME)
    except metadata.PackageNotFoundError:
        installed = ""
    if installed and installed != "0.0.0":
        return installed
    return f"{BASE_VERSION}+dev"


__version__ = compute_version()

__all__ = ["__version__", "BASE_VERSION", "compute_version"]
