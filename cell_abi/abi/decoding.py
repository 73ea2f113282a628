"""
Inverse of `cell_abi.abi.encoding`.

`ChainReader` replays the writer's cell-jump decision from what it has
consumed so far, so a value is always read from the same cell it was written
to. A jump is only legal when the current cell is exhausted except for its
continuation ref.

Top-level:
- unpack_tokens(params, reader, allow_partial) -> [Token]
- unpack_from_cell(params, cell, allow_partial=False) -> [Token]
"""

from __future__ import annotations

from typing import Any, List, Sequence, Tuple

from ..address import load_address
from ..cells import MAX_BITS, MAX_REFS, Cell, CellSlice
from ..errors import DecodeError
from .tokens import Token, map_key_order
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
    Param,
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
    "ChainReader",
    "read_token",
    "read_snake",
    "unpack_tokens",
    "unpack_from_cell",
]


class ChainReader:
    """
    Read cursor over a chain of cells.

    `bit_offset` accounts for bits that the writer reserved in the first cell
    but the reader has not consumed through this slice (message bodies
    reserve room for a signature).
    """

    def __init__(self, source: Cell | CellSlice, *, bit_offset: int = 0) -> None:
        self._slice = source.begin_parse() if isinstance(source, Cell) else source
        self._offset = bit_offset

    @property
    def slice(self) -> CellSlice:
        return self._slice

    def slot(self, max_size: Tuple[int, int]) -> CellSlice:
        bits, refs = max_size
        s = self._slice
        free_bits = MAX_BITS - self._offset - s.consumed_bits
        free_refs = MAX_REFS - 1 - s.consumed_refs
        if free_bits < bits or free_refs < refs:
            if s.remaining_bits != 0 or s.remaining_refs != 1:
                raise DecodeError(
                    "expected continuation cell",
                    bits_left=s.remaining_bits,
                    refs_left=s.remaining_refs,
                )
            self._slice = s.load_ref().begin_parse()
            self._offset = 0
        return self._slice

    def finish(self, allow_partial: bool = False) -> None:
        if allow_partial:
            return
        s = self._slice
        if not s.is_empty():
            raise DecodeError(
                "unconsumed data after decoding",
                bits_left=s.remaining_bits,
                refs_left=s.remaining_refs,
            )


def read_snake(cell: Cell) -> bytes:
    out = bytearray()
    while True:
        s = cell.begin_parse()
        if s.remaining_bits % 8:
            raise DecodeError("byte chain cell is not byte aligned")
        out += s.load_bytes(s.remaining_bits // 8)
        if s.remaining_refs == 0:
            return bytes(out)
        if s.remaining_refs > 1:
            raise DecodeError("byte chain cell has more than one ref")
        cell = s.load_ref()


def _read_chain(kind: ParamType, cell: Cell, count: int) -> Tuple[Any, ...]:
    sub = ChainReader(cell)
    items = tuple(read_token(sub, kind) for _ in range(count))
    sub.finish(False)
    return items


def read_token(r: ChainReader, kind: ParamType) -> Any:
    """Read one normalized value of type `kind`."""
    if isinstance(kind, TupleType):
        return tuple(Token(f.name, f.kind, read_token(r, f.kind)) for f in kind.fields)

    s = r.slot(kind.max_size)
    if isinstance(kind, BoolType):
        return s.load_bit()
    if isinstance(kind, IntType):
        return s.load_int(kind.bits)
    if isinstance(kind, UintType):
        return s.load_uint(kind.bits)
    if isinstance(kind, TokenType):
        n = s.load_uint(4)
        return s.load_uint(8 * n)
    if isinstance(kind, TimeType):
        return s.load_uint(64)
    if isinstance(kind, ExpireType):
        return s.load_uint(32)
    if isinstance(kind, PublicKeyType):
        return s.load_bytes(32) if s.load_bit() else None
    if isinstance(kind, AddressType):
        return load_address(s)
    if isinstance(kind, CellType):
        return s.load_ref()
    if isinstance(kind, BytesType):
        return read_snake(s.load_ref())
    if isinstance(kind, FixedBytesType):
        raw = read_snake(s.load_ref())
        if len(raw) != kind.size:
            raise DecodeError("fixed bytes length mismatch", expected=kind.size, got=len(raw))
        return raw
    if isinstance(kind, StringType):
        try:
            return read_snake(s.load_ref()).decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError("string is not valid UTF-8") from e
    if isinstance(kind, ArrayType):
        n = s.load_uint(32)
        return _read_chain(kind.item, s.load_ref(), n)
    if isinstance(kind, FixedArrayType):
        return _read_chain(kind.item, s.load_ref(), kind.size)
    if isinstance(kind, MapType):
        if not s.load_bit():
            return ()
        return _read_map(kind, s.load_ref())
    if isinstance(kind, OptionalType):
        if not s.load_bit():
            return None
        return _read_chain(kind.inner, s.load_ref(), 1)[0]
    if isinstance(kind, RefType):
        return _read_chain(kind.inner, s.load_ref(), 1)[0]
    raise DecodeError(f"unsupported type {kind!r}")


def _read_map(kind: MapType, cell: Cell) -> Tuple[Tuple[Any, Any], ...]:
    sub = ChainReader(cell)
    n = sub.slot((32, 0)).load_uint(32)
    if n == 0:
        raise DecodeError("non-empty map flag with zero entries")
    pairs = []
    last = None
    for _ in range(n):
        k = read_token(sub, kind.key)
        if k is None:
            raise DecodeError("map key must not be addr_none")
        order = map_key_order(kind.key, k)
        if last is not None and order <= last:
            raise DecodeError("map keys are not strictly ascending")
        last = order
        pairs.append((k, read_token(sub, kind.value)))
    sub.finish(False)
    return tuple(pairs)


def unpack_tokens(
    params: Sequence[Param], reader: ChainReader, allow_partial: bool = False
) -> List[Token]:
    tokens = [Token(p.name, p.kind, read_token(reader, p.kind)) for p in params]
    reader.finish(allow_partial)
    return tokens


def unpack_from_cell(
    params: Sequence[Param], cell: Cell, allow_partial: bool = False
) -> List[Token]:
    """Decode `params` from `cell`; trailing data is an error unless allow_partial."""
    return unpack_tokens(params, ChainReader(cell), allow_partial)
