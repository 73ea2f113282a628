"""
Recognition of well-known message payloads.

Only plain comments are recognised: a zero uint32 opcode followed by UTF-8
text laid out as a byte chain (the remaining bits of the root cell, then one
ref per continuation cell).
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from .abi.decoding import read_snake
from .cells import Cell, CellBuilder, boc_from_base64
from .errors import DecodeError

__all__ = ["COMMENT_OPCODE", "parse_known_payload", "parse_comment"]

COMMENT_OPCODE = 0


def parse_comment(cell: Cell) -> Optional[str]:
    s = cell.begin_parse()
    if s.remaining_bits < 32 or s.load_uint(32) != COMMENT_OPCODE:
        return None
    # Re-root the tail so the byte-chain reader can walk it.
    rest = s.remaining_bits
    tail = CellBuilder().store_uint(s.load_uint(rest), rest)
    for ref in cell.refs:
        tail.store_ref(ref)
    try:
        return read_snake(tail.end_cell()).decode("utf-8")
    except (DecodeError, UnicodeDecodeError):
        return None


def parse_known_payload(payload: str) -> Optional[Dict[str, Any]]:
    """Return ``{"type": "comment", "data": text}`` for a comment payload, else None."""
    text = parse_comment(boc_from_base64(payload))
    if text is None:
        return None
    return {"type": "comment", "data": text}
