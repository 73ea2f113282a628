"""
Token packing into a chain of cells.

Layout rules
------------
Tokens are written in schema order. Each cell keeps its last reference slot
for the continuation link. Before a token with static size `(bits, refs)` is
written, a new cell is started when the current one has fewer than `bits`
free data bits or fewer than `refs` free non-continuation refs. Tuples are
flattened into their fields; nested containers (arrays, maps, optionals,
refs, bytes) live in their own child chains.

See `cell_abi.abi.decoding` for the inverse.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Sequence, Tuple

from ..address import store_address
from ..cells import Cell, CellBuilder, CellOverflow
from ..errors import SchemaError
from .tokens import Token
from .types import (
    AddressType,
    ArrayType,
    BoolType,
    BytesType,
    CellType,
    ExpireType,
    FixedArrayType,
    FixedBytesType,
    IntType,
    MapType,
    OptionalType,
    ParamType,
    PublicKeyType,
    RefType,
    StringType,
    TimeType,
    TokenType,
    TupleType,
    UintType,
)

__all__ = [
    "SNAKE_CHUNK",
    "ChainWriter",
    "write_token",
    "pack_tokens",
    "pack_into_cell",
    "pack_values",
    "snake_cell",
]

SNAKE_CHUNK = 127  # bytes per cell in a byte chain (1016 bits)


class ChainWriter:
    """Appends tokens to a linked chain of cells."""

    def __init__(self, *, reserved_bits: int = 0) -> None:
        self._builders: List[CellBuilder] = [CellBuilder(reserved_bits=reserved_bits)]

    @property
    def current(self) -> CellBuilder:
        return self._builders[-1]

    def slot(self, max_size: Tuple[int, int]) -> CellBuilder:
        """Return the builder that must receive a value of `max_size`."""
        bits, refs = max_size
        cur = self.current
        if cur.remaining_bits < bits or cur.remaining_refs - 1 < refs:
            self._builders.append(CellBuilder())
        return self.current

    def end(self) -> Cell:
        child: Cell | None = None
        for b in reversed(self._builders):
            if child is not None:
                b.store_ref(child)
            try:
                child = b.end_cell()
            except CellOverflow as e:
                raise SchemaError(f"cannot pack value: {e}") from e
        assert child is not None
        return child


def snake_cell(data: bytes) -> Cell:
    """Split bytes across a chain of cells, 127 bytes each."""
    chunks = [data[i : i + SNAKE_CHUNK] for i in range(0, len(data), SNAKE_CHUNK)] or [b""]
    tail: Cell | None = None
    for chunk in reversed(chunks):
        b = CellBuilder().store_bytes(chunk)
        if tail is not None:
            b.store_ref(tail)
        tail = b.end_cell()
    assert tail is not None
    return tail


def _chain_of(kind: ParamType, values: Iterable[Any]) -> Cell:
    w = ChainWriter()
    for v in values:
        write_token(w, kind, v)
    return w.end()


def write_token(w: ChainWriter, kind: ParamType, value: Any) -> None:
    """Write one normalized value of type `kind`."""
    if isinstance(kind, TupleType):
        for field, tok in zip(kind.fields, value):
            write_token(w, field.kind, tok.value)
        return

    b = w.slot(kind.max_size)
    if isinstance(kind, BoolType):
        b.store_bit(value)
    elif isinstance(kind, IntType):
        b.store_int(value, kind.bits)
    elif isinstance(kind, UintType):
        b.store_uint(value, kind.bits)
    elif isinstance(kind, TokenType):
        n = (value.bit_length() + 7) // 8
        b.store_uint(n, 4)
        b.store_uint(value, 8 * n)
    elif isinstance(kind, TimeType):
        b.store_uint(value, 64)
    elif isinstance(kind, ExpireType):
        b.store_uint(value, 32)
    elif isinstance(kind, PublicKeyType):
        if value is None:
            b.store_bit(0)
        else:
            b.store_bit(1)
            b.store_bytes(value)
    elif isinstance(kind, AddressType):
        store_address(b, value)
    elif isinstance(kind, CellType):
        b.store_ref(value)
    elif isinstance(kind, (BytesType, FixedBytesType)):
        b.store_ref(snake_cell(value))
    elif isinstance(kind, StringType):
        b.store_ref(snake_cell(value.encode("utf-8")))
    elif isinstance(kind, ArrayType):
        b.store_uint(len(value), 32)
        b.store_ref(_chain_of(kind.item, value))
    elif isinstance(kind, FixedArrayType):
        b.store_ref(_chain_of(kind.item, value))
    elif isinstance(kind, MapType):
        if not value:
            b.store_bit(0)
            return
        b.store_bit(1)
        sub = ChainWriter()
        sub.slot((32, 0)).store_uint(len(value), 32)
        for k, v in value:
            write_token(sub, kind.key, k)
            write_token(sub, kind.value, v)
        b.store_ref(sub.end())
    elif isinstance(kind, OptionalType):
        if value is None:
            b.store_bit(0)
            return
        b.store_bit(1)
        b.store_ref(_chain_of(kind.inner, [value]))
    elif isinstance(kind, RefType):
        b.store_ref(_chain_of(kind.inner, [value]))
    else:
        raise SchemaError(f"unsupported type {kind!r}")


def pack_values(w: ChainWriter, tokens: Sequence[Token]) -> None:
    for t in tokens:
        try:
            write_token(w, t.kind, t.value)
        except (CellOverflow, TypeError, AttributeError) as e:
            raise SchemaError(f"cannot pack value: {e}", field=t.name) from e


def pack_tokens(tokens: Sequence[Token], *, reserved_bits: int = 0) -> Cell:
    w = ChainWriter(reserved_bits=reserved_bits)
    pack_values(w, tokens)
    return w.end()


def pack_into_cell(tokens: Sequence[Token]) -> Cell:
    """Serialize already-built tokens in the canonical layout."""
    return pack_tokens(tokens)
