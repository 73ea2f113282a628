"""
Bag-of-cells (BOC) serialization.

Layout (generic `b5ee9c72` magic, single root):

    magic            4 bytes   b5 ee 9c 72
    flags/size       1 byte    has_idx(1) has_crc32c(1) has_cache_bits(1) flags(2) size(3)
    off_bytes        1 byte
    cells            size bytes
    roots            size bytes
    absent           size bytes   (always 0)
    tot_cells_size   off_bytes
    root_list        roots * size bytes
    index            cells * off_bytes   (only when has_idx)
    cell_data        tot_cells_size bytes
    crc32c           4 bytes LE          (only when has_crc32c)

Each cell is `d1 d2 padded_data ref_index*` and every reference points to a
cell with a *higher* index (parents precede children). Identical subtrees are
stored once.

Public API:
- serialize_boc(cell, *, with_crc=False) -> bytes
- deserialize_boc(data) -> Cell
- boc_to_base64(cell) -> str
- boc_from_base64(text) -> Cell
- boc_hash(text) -> str     (hex representation hash of the root)
"""

from __future__ import annotations

import base64
import binascii
from typing import Dict, List, Tuple

from ..config import load_config
from ..errors import DecodeError
from .cell import MAX_BITS, MAX_DEPTH, Cell

__all__ = [
    "BOC_MAGIC",
    "crc32c",
    "serialize_boc",
    "deserialize_boc",
    "boc_to_base64",
    "boc_from_base64",
    "boc_hash",
]

BOC_MAGIC = bytes.fromhex("b5ee9c72")


# ──────────────────────────────────────────────────────────────────────────────
# CRC-32C (Castagnoli), reflected polynomial 0x82F63B78
# ──────────────────────────────────────────────────────────────────────────────


def _make_crc_table() -> Tuple[int, ...]:
    table = []
    for n in range(256):
        c = n
        for _ in range(8):
            c = (c >> 1) ^ 0x82F63B78 if c & 1 else c >> 1
        table.append(c)
    return tuple(table)


_CRC_TABLE = _make_crc_table()


def crc32c(data: bytes) -> int:
    crc = 0xFFFFFFFF
    for b in data:
        crc = _CRC_TABLE[(crc ^ b) & 0xFF] ^ (crc >> 8)
    return crc ^ 0xFFFFFFFF


# ──────────────────────────────────────────────────────────────────────────────
# Serialization
# ──────────────────────────────────────────────────────────────────────────────


def _byte_width(n: int) -> int:
    return max(1, (n.bit_length() + 7) // 8)


def _topological_order(root: Cell) -> List[Cell]:
    """Reverse DFS post-order with dedup by hash: parents before children."""
    seen: Dict[bytes, Cell] = {}
    post: List[Cell] = []
    stack: List[Tuple[Cell, int]] = [(root, 0)]
    pushed = {root.hash}
    while stack:
        cell, i = stack.pop()
        if i < len(cell.refs):
            stack.append((cell, i + 1))
            child = cell.refs[i]
            if child.hash not in seen and child.hash not in pushed:
                pushed.add(child.hash)
                stack.append((child, 0))
            continue
        seen[cell.hash] = cell
        post.append(cell)
    post.reverse()
    return post


def serialize_boc(root: Cell, *, with_crc: bool = False) -> bytes:
    cells = _topological_order(root)
    index = {c.hash: i for i, c in enumerate(cells)}
    size = _byte_width(len(cells))

    body = bytearray()
    for c in cells:
        body += c.descriptors()
        body += c.padded_data()
        for r in c.refs:
            body += index[r.hash].to_bytes(size, "big")

    off_bytes = _byte_width(len(body))
    out = bytearray(BOC_MAGIC)
    out.append((0x40 if with_crc else 0x00) | size)
    out.append(off_bytes)
    out += len(cells).to_bytes(size, "big")
    out += (1).to_bytes(size, "big")
    out += (0).to_bytes(size, "big")
    out += len(body).to_bytes(off_bytes, "big")
    out += (0).to_bytes(size, "big")
    out += body
    if with_crc:
        out += crc32c(bytes(out)).to_bytes(4, "little")
    return bytes(out)


# ──────────────────────────────────────────────────────────────────────────────
# Deserialization
# ──────────────────────────────────────────────────────────────────────────────


class _Reader:
    __slots__ = ("buf", "pos")

    def __init__(self, buf: bytes) -> None:
        self.buf = buf
        self.pos = 0

    def take(self, n: int) -> bytes:
        j = self.pos + n
        if j > len(self.buf):
            raise DecodeError("truncated boc", offset=self.pos, need=n)
        out = self.buf[self.pos : j]
        self.pos = j
        return out

    def uint(self, n: int) -> int:
        return int.from_bytes(self.take(n), "big")


def _strip_completion_tag(data: bytes) -> Tuple[bytes, int]:
    """Remove the trailing `1` bit appended to a non byte-aligned cell."""
    if not data:
        raise DecodeError("odd data descriptor without data")
    last = data[-1]
    if last == 0:
        raise DecodeError("missing completion tag in cell data")
    trailing = (last & -last).bit_length() - 1
    bit_len = len(data) * 8 - trailing - 1
    out = bytearray(data)
    out[-1] &= ~(1 << trailing) & 0xFF
    nbytes = (bit_len + 7) // 8
    return bytes(out[:nbytes]), bit_len


def deserialize_boc(data: bytes) -> Cell:
    cfg = load_config()
    if len(data) > cfg.max_boc_bytes:
        raise DecodeError("boc exceeds size limit", size=len(data), limit=cfg.max_boc_bytes)

    r = _Reader(data)
    if r.take(4) != BOC_MAGIC:
        raise DecodeError("unknown boc magic")
    flags = r.uint(1)
    has_idx = bool(flags & 0x80)
    has_crc = bool(flags & 0x40)
    size = flags & 0x07
    if size < 1 or size > 4:
        raise DecodeError("invalid boc ref size", size=size)
    off_bytes = r.uint(1)
    if off_bytes < 1 or off_bytes > 8:
        raise DecodeError("invalid boc offset size", off_bytes=off_bytes)

    n_cells = r.uint(size)
    n_roots = r.uint(size)
    n_absent = r.uint(size)
    tot_size = r.uint(off_bytes)
    if n_cells > cfg.max_cells:
        raise DecodeError("boc has too many cells", cells=n_cells, limit=cfg.max_cells)
    if n_roots != 1:
        raise DecodeError("expected exactly one root", roots=n_roots)
    if n_absent != 0:
        raise DecodeError("absent cells are not supported")
    root_index = r.uint(size)
    if root_index >= n_cells:
        raise DecodeError("root index out of range")
    if has_idx:
        r.take(n_cells * off_bytes)

    cells_start = r.pos
    raw: List[Tuple[bytes, int, List[int]]] = []
    for i in range(n_cells):
        d1, d2 = r.uint(1), r.uint(1)
        if d1 & 0xF8:
            raise DecodeError("exotic or hashed cells are not supported", cell=i)
        n_refs = d1 & 0x07
        if n_refs > 4:
            raise DecodeError("cell has more than 4 refs", cell=i)
        payload = r.take((d2 + 1) // 2)
        if d2 & 1:
            cell_data, bit_len = _strip_completion_tag(payload)
        else:
            cell_data, bit_len = payload, len(payload) * 8
        if bit_len > MAX_BITS:
            raise DecodeError("cell data exceeds 1023 bits", cell=i)
        refs = [r.uint(size) for _ in range(n_refs)]
        for ref in refs:
            if ref <= i or ref >= n_cells:
                raise DecodeError("invalid cell reference order", cell=i, ref=ref)
        raw.append((cell_data, bit_len, refs))
    if r.pos - cells_start != tot_size:
        raise DecodeError("cell data size mismatch")

    if has_crc:
        body_end = r.pos
        expected = int.from_bytes(r.take(4), "little")
        if crc32c(data[:body_end]) != expected:
            raise DecodeError("boc crc32c mismatch")
    if r.pos != len(data):
        raise DecodeError("trailing bytes after boc", extra=len(data) - r.pos)

    # Children have higher indices, so one backwards pass sees them first.
    depths = [0] * n_cells
    built: List[Cell | None] = [None] * n_cells
    for i in range(n_cells - 1, -1, -1):
        cell_data, bit_len, refs = raw[i]
        if refs:
            depths[i] = 1 + max(depths[j] for j in refs)
            if depths[i] > MAX_DEPTH:
                raise DecodeError("boc exceeds maximum cell depth", cell=i, limit=MAX_DEPTH)
        built[i] = Cell(
            data=cell_data,
            bit_len=bit_len,
            refs=tuple(built[j] for j in refs),  # type: ignore[misc]
        )
    return built[root_index]  # type: ignore[return-value]


# ──────────────────────────────────────────────────────────────────────────────
# Base64 helpers
# ──────────────────────────────────────────────────────────────────────────────


def boc_to_base64(cell: Cell) -> str:
    return base64.b64encode(serialize_boc(cell)).decode("ascii")


def boc_from_base64(text: str) -> Cell:
    if not isinstance(text, str):
        raise DecodeError("boc must be a base64 string")
    try:
        raw = base64.b64decode(text.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"invalid base64: {e}") from e
    return deserialize_boc(raw)


def boc_hash(text: str) -> str:
    return boc_from_base64(text).hash.hex()
