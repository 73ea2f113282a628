"""
cell_abi.cli
============

`cell-abi` command line: inspect types, hash/pack/unpack BOCs and decode
call bodies and transactions against a contract ABI.
"""

from .main import app, main, run

__all__ = ["app", "main", "run"]
