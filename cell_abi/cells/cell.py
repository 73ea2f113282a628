"""
Cells: the fixed-capacity nodes of a tree-of-cells payload.

A cell holds up to 1023 data bits and up to 4 references to child cells. Cells
are immutable; `CellBuilder` assembles one, `CellSlice` reads one back with a
bit/ref cursor.

Representation hash (ordinary cells, level 0):

    d1   = refs_count
    d2   = ceil(bits / 8) + floor(bits / 8)
    repr = d1 || d2 || padded_data || depth(ref_i) (2B BE)... || hash(ref_i)...
    hash = sha256(repr)

`padded_data` appends a single `1` bit followed by zeros when the bit length is
not a multiple of 8 (the "completion tag").
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Tuple

from ..errors import DecodeError

__all__ = [
    "MAX_BITS",
    "MAX_REFS",
    "MAX_DEPTH",
    "CellOverflow",
    "CellUnderflow",
    "Cell",
    "CellBuilder",
    "CellSlice",
]

MAX_BITS = 1023
MAX_REFS = 4
# Longest path from a cell to a leaf that is accepted anywhere.
MAX_DEPTH = 1024


class CellOverflow(ValueError):
    """Raised when a builder is asked to hold more than a cell can."""


class CellUnderflow(DecodeError):
    """Raised when a slice is asked for more bits/refs than it holds."""

    def __init__(self, message: str = "cell underflow", **data) -> None:
        super().__init__(message, **data)


@dataclass(frozen=True, eq=False)
class Cell:
    data: bytes = b""
    bit_len: int = 0
    refs: Tuple["Cell", ...] = ()
    # Set in __post_init__ from the children's stored values.
    depth: int = field(init=False, repr=False)
    hash: bytes = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not 0 <= self.bit_len <= MAX_BITS:
            raise CellOverflow(f"cell bit length {self.bit_len} exceeds {MAX_BITS}")
        if len(self.refs) > MAX_REFS:
            raise CellOverflow(f"cell holds {len(self.refs)} refs, max {MAX_REFS}")
        if len(self.data) != (self.bit_len + 7) // 8:
            raise CellOverflow("cell data length does not match bit length")
        depth = 1 + max(r.depth for r in self.refs) if self.refs else 0
        if depth > MAX_DEPTH:
            raise CellOverflow(f"cell tree depth {depth} exceeds {MAX_DEPTH}")
        object.__setattr__(self, "depth", depth)
        object.__setattr__(self, "hash", self._representation_hash())

    # ---------------- structure ----------------

    @property
    def bits(self) -> int:
        """Data bits as an integer of width `bit_len` (MSB first)."""
        if not self.bit_len:
            return 0
        return int.from_bytes(self.data, "big") >> (len(self.data) * 8 - self.bit_len)

    def descriptors(self) -> bytes:
        d1 = len(self.refs)
        d2 = (self.bit_len + 7) // 8 + self.bit_len // 8
        return bytes([d1, d2])

    def padded_data(self) -> bytes:
        rem = self.bit_len % 8
        if rem == 0:
            return self.data
        out = bytearray(self.data)
        out[-1] |= 1 << (7 - rem)
        return bytes(out)

    def _representation_hash(self) -> bytes:
        h = hashlib.sha256()
        h.update(self.descriptors())
        h.update(self.padded_data())
        for r in self.refs:
            h.update(r.depth.to_bytes(2, "big"))
        for r in self.refs:
            h.update(r.hash)
        return h.digest()

    def hex_hash(self) -> str:
        return self.hash.hex()

    def begin_parse(self) -> "CellSlice":
        return CellSlice(self)

    # Cells are values: two trees with the same content are the same cell.
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Cell):
            return NotImplemented
        return self.hash == other.hash

    def __hash__(self) -> int:
        return hash(self.hash)

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"Cell(bits={self.bit_len}, refs={len(self.refs)}, hash={self.hash.hex()[:16]}…)"


class CellBuilder:
    """
    Mutable assembler for a single cell.

    `reserved_bits` shrinks the usable capacity without storing anything; it
    is used to keep room in a message body's root cell for a signature that
    is prepended later.
    """

    __slots__ = ("_acc", "_len", "_refs", "_reserved")

    def __init__(self, *, reserved_bits: int = 0) -> None:
        if not 0 <= reserved_bits <= MAX_BITS:
            raise CellOverflow("reserved bits out of range")
        self._acc = 0
        self._len = 0
        self._refs: list[Cell] = []
        self._reserved = reserved_bits

    @property
    def bit_len(self) -> int:
        return self._len

    @property
    def remaining_bits(self) -> int:
        return MAX_BITS - self._reserved - self._len

    @property
    def remaining_refs(self) -> int:
        return MAX_REFS - len(self._refs)

    def store_uint(self, value: int, bits: int) -> "CellBuilder":
        if bits < 0:
            raise CellOverflow("negative bit width")
        if value < 0 or value >> bits:
            raise CellOverflow(f"value {value} does not fit in uint{bits}")
        if bits > self.remaining_bits:
            raise CellOverflow(f"cannot store {bits} bits, {self.remaining_bits} left")
        self._acc = (self._acc << bits) | value
        self._len += bits
        return self

    def store_int(self, value: int, bits: int) -> "CellBuilder":
        if bits <= 0:
            raise CellOverflow("signed width must be positive")
        lo, hi = -(1 << (bits - 1)), (1 << (bits - 1)) - 1
        if not lo <= value <= hi:
            raise CellOverflow(f"value {value} does not fit in int{bits}")
        return self.store_uint(value & ((1 << bits) - 1), bits)

    def store_bit(self, bit: bool | int) -> "CellBuilder":
        return self.store_uint(1 if bit else 0, 1)

    def store_bytes(self, data: bytes) -> "CellBuilder":
        if not data:
            return self
        return self.store_uint(int.from_bytes(data, "big"), 8 * len(data))

    def store_ref(self, cell: Cell) -> "CellBuilder":
        if not self.remaining_refs:
            raise CellOverflow("cell already holds 4 refs")
        self._refs.append(cell)
        return self

    def store_cell_contents(self, cell: Cell) -> "CellBuilder":
        """Append another cell's bits and refs to this builder."""
        self.store_uint(cell.bits, cell.bit_len)
        for r in cell.refs:
            self.store_ref(r)
        return self

    def end_cell(self) -> Cell:
        nbytes = (self._len + 7) // 8
        pad = nbytes * 8 - self._len
        data = (self._acc << pad).to_bytes(nbytes, "big") if nbytes else b""
        return Cell(data=data, bit_len=self._len, refs=tuple(self._refs))


class CellSlice:
    """Read cursor over a cell's bits and refs."""

    __slots__ = ("_cell", "_bits", "_pos", "_ref_pos")

    def __init__(self, cell: Cell) -> None:
        self._cell = cell
        self._bits = cell.bits
        self._pos = 0
        self._ref_pos = 0

    @property
    def cell(self) -> Cell:
        return self._cell

    @property
    def consumed_bits(self) -> int:
        return self._pos

    @property
    def consumed_refs(self) -> int:
        return self._ref_pos

    @property
    def remaining_bits(self) -> int:
        return self._cell.bit_len - self._pos

    @property
    def remaining_refs(self) -> int:
        return len(self._cell.refs) - self._ref_pos

    def is_empty(self) -> bool:
        return self.remaining_bits == 0 and self.remaining_refs == 0

    def preload_uint(self, bits: int) -> int:
        if bits > self.remaining_bits:
            raise CellUnderflow(
                f"need {bits} bits, {self.remaining_bits} left", need=bits, left=self.remaining_bits
            )
        if bits == 0:
            return 0
        shift = self._cell.bit_len - self._pos - bits
        return (self._bits >> shift) & ((1 << bits) - 1)

    def load_uint(self, bits: int) -> int:
        v = self.preload_uint(bits)
        self._pos += bits
        return v

    def load_int(self, bits: int) -> int:
        v = self.load_uint(bits)
        if bits and v >> (bits - 1):
            v -= 1 << bits
        return v

    def load_bit(self) -> bool:
        return bool(self.load_uint(1))

    def load_bytes(self, n: int) -> bytes:
        if n == 0:
            return b""
        return self.load_uint(8 * n).to_bytes(n, "big")

    def skip_bits(self, bits: int) -> None:
        self.load_uint(bits)

    def load_ref(self) -> Cell:
        if not self.remaining_refs:
            raise CellUnderflow("no refs left")
        ref = self._cell.refs[self._ref_pos]
        self._ref_pos += 1
        return ref
