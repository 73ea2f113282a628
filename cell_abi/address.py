"""
Standard internal addresses.

Text form is ``"<workchain>:<64 hex digits>"`` (e.g. ``"0:3f…a1"`` or
``"-1:…"``). On the wire an address is the `addr_std` constructor:

    10 | anycast(0) | int8 workchain | 256-bit account id      (267 bits)

and the absent address is `addr_none` (``00``, 2 bits).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Optional

from .cells.cell import CellBuilder, CellSlice
from .errors import DecodeError

__all__ = [
    "ADDRESS_BITS",
    "Address",
    "parse_address",
    "store_address",
    "load_address",
]

ADDRESS_BITS = 267

_ADDR_RE = re.compile(r"^(-?\d{1,3}):([0-9a-fA-F]{64})$")


@dataclass(frozen=True, order=True)
class Address:
    workchain: int
    account: bytes

    def __post_init__(self) -> None:
        if not -128 <= self.workchain <= 127:
            raise ValueError("workchain must fit in int8")
        if len(self.account) != 32:
            raise ValueError("account id must be 32 bytes")

    def __str__(self) -> str:
        return f"{self.workchain}:{self.account.hex()}"

    def to_json(self) -> str:
        return str(self)


def parse_address(value: Any) -> Address:
    """Accept an Address or its ``wc:hex`` text form; ValueError otherwise."""
    if isinstance(value, Address):
        return value
    if not isinstance(value, str):
        raise ValueError("address must be a string like '0:<64 hex>'")
    m = _ADDR_RE.match(value.strip())
    if not m:
        raise ValueError(f"invalid address {value!r}")
    return Address(int(m.group(1)), bytes.fromhex(m.group(2)))


def store_address(b: CellBuilder, addr: Optional[Address]) -> None:
    if addr is None:
        b.store_uint(0b00, 2)
        return
    b.store_uint(0b10, 2)
    b.store_bit(0)
    b.store_int(addr.workchain, 8)
    b.store_bytes(addr.account)


def load_address(s: CellSlice) -> Optional[Address]:
    tag = s.load_uint(2)
    if tag == 0b00:
        return None
    if tag != 0b10:
        raise DecodeError("unsupported address constructor", tag=tag)
    if s.load_bit():
        raise DecodeError("anycast addresses are not supported")
    wc = s.load_int(8)
    return Address(wc, s.load_bytes(32))
