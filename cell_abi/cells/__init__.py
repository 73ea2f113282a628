"""
cell_abi.cells
==============

Tree-of-cells substrate: immutable cells, builder/slice cursors and the
bag-of-cells wire format with base64 helpers.
"""

from __future__ import annotations

from .boc import *  # noqa: F401,F403
from .cell import *  # noqa: F401,F403

from .boc import __all__ as _all_boc
from .cell import __all__ as _all_cell

__all__ = tuple(dict.fromkeys((*_all_cell, *_all_boc)))
