from __future__ import annotations

import base64

import pytest

from cell_abi.cells import (
    MAX_BITS,
    MAX_DEPTH,
    Cell,
    CellBuilder,
    CellOverflow,
    CellUnderflow,
    boc_from_base64,
    boc_hash,
    boc_to_base64,
    crc32c,
    deserialize_boc,
    serialize_boc,
)
from cell_abi.errors import DecodeError

from conftest import linear_boc

EMPTY_HASH = "96a296d224f285c67bee93c30f8a309157f0daa35dc5b87e410b78630a09cfc7"
EMPTY_BOC = "te6ccgEBAQEAAgAAAA=="


# ---------------------------------------------------------------------------
# Cells
# ---------------------------------------------------------------------------


def test_empty_cell_hash_vector() -> None:
    assert Cell().hash.hex() == EMPTY_HASH
    assert CellBuilder().end_cell().hex_hash() == EMPTY_HASH


def test_builder_slice_roundtrip_mixed_widths() -> None:
    child = CellBuilder().store_uint(0xAB, 8).end_cell()
    cell = (
        CellBuilder()
        .store_bit(1)
        .store_int(-5, 7)
        .store_uint(0x1234, 16)
        .store_bytes(b"hi")
        .store_ref(child)
        .end_cell()
    )
    assert cell.bit_len == 1 + 7 + 16 + 16
    s = cell.begin_parse()
    assert s.load_bit() is True
    assert s.load_int(7) == -5
    assert s.load_uint(16) == 0x1234
    assert s.load_bytes(2) == b"hi"
    assert s.load_ref() == child
    assert s.is_empty()


def test_padded_data_has_completion_tag() -> None:
    cell = CellBuilder().store_uint(0b101, 3).end_cell()
    assert cell.data == bytes([0b10100000])
    assert cell.padded_data() == bytes([0b10110000])
    assert cell.descriptors() == bytes([0, 1])


def test_builder_overflow() -> None:
    b = CellBuilder().store_uint(0, MAX_BITS)
    with pytest.raises(CellOverflow):
        b.store_bit(0)
    with pytest.raises(CellOverflow):
        CellBuilder().store_uint(256, 8)
    with pytest.raises(CellOverflow):
        CellBuilder().store_int(64, 7)


def test_reserved_bits_shrink_capacity() -> None:
    b = CellBuilder(reserved_bits=513)
    assert b.remaining_bits == MAX_BITS - 513
    with pytest.raises(CellOverflow):
        b.store_uint(0, MAX_BITS - 512)


def test_four_refs_max() -> None:
    b = CellBuilder()
    for _ in range(4):
        b.store_ref(Cell())
    with pytest.raises(CellOverflow):
        b.store_ref(Cell())


def test_slice_underflow_is_decode_error() -> None:
    s = CellBuilder().store_uint(1, 4).end_cell().begin_parse()
    with pytest.raises(CellUnderflow):
        s.load_uint(5)
    with pytest.raises(DecodeError):
        s.load_ref()


def test_cells_compare_by_content() -> None:
    a = CellBuilder().store_uint(7, 3).end_cell()
    b = CellBuilder().store_uint(7, 3).end_cell()
    assert a == b and hash(a) == hash(b)
    assert a != CellBuilder().store_uint(7, 4).end_cell()


# ---------------------------------------------------------------------------
# BOC
# ---------------------------------------------------------------------------


def test_empty_cell_boc_vector() -> None:
    assert boc_to_base64(Cell()) == EMPTY_BOC
    assert boc_from_base64(EMPTY_BOC) == Cell()
    assert boc_hash(EMPTY_BOC) == EMPTY_HASH


def test_boc_roundtrip_dedupes_shared_subtrees() -> None:
    leaf = CellBuilder().store_bytes(b"leaf").end_cell()
    mid = CellBuilder().store_uint(1, 1).store_ref(leaf).end_cell()
    root = CellBuilder().store_ref(mid).store_ref(leaf).store_ref(mid).end_cell()

    raw = serialize_boc(root)
    # root, mid, leaf stored once each
    assert raw[6] == 3
    back = deserialize_boc(raw)
    assert back == root
    assert back.refs[0].refs[0] == leaf


def test_boc_with_crc_roundtrip_and_corruption() -> None:
    root = CellBuilder().store_uint(0xDEADBEEF, 32).end_cell()
    raw = serialize_boc(root, with_crc=True)
    assert deserialize_boc(raw) == root

    bad = bytearray(raw)
    bad[-1] ^= 0xFF
    with pytest.raises(DecodeError):
        deserialize_boc(bytes(bad))


def test_crc32c_known_value() -> None:
    assert crc32c(b"123456789") == 0xE3069283


def test_boc_rejects_garbage() -> None:
    with pytest.raises(DecodeError):
        boc_from_base64("not base64!!")
    with pytest.raises(DecodeError):
        deserialize_boc(b"\x00\x01\x02\x03")
    raw = base64.b64decode(EMPTY_BOC)
    with pytest.raises(DecodeError):
        deserialize_boc(raw + b"\x00")
    with pytest.raises(DecodeError):
        deserialize_boc(raw[:-1])


def test_boc_cell_limit_from_env(monkeypatch) -> None:
    from cell_abi.config import load_config

    cell = Cell()
    for i in range(20):
        cell = CellBuilder().store_uint(i, 8).store_ref(cell).end_cell()
    text = boc_to_base64(cell)
    assert boc_from_base64(text) == cell

    monkeypatch.setenv("CELL_ABI_MAX_CELLS", "16")
    load_config.cache_clear()
    with pytest.raises(DecodeError):
        boc_from_base64(text)


# ---------------------------------------------------------------------------
# Depth limit
# ---------------------------------------------------------------------------


def test_depth_and_hash_of_long_chain() -> None:
    cell = Cell()
    for _ in range(MAX_DEPTH):
        cell = CellBuilder().store_ref(cell).end_cell()
    assert cell.depth == MAX_DEPTH
    back = deserialize_boc(linear_boc(MAX_DEPTH + 1))
    assert back.depth == MAX_DEPTH
    assert back.hash == cell.hash
    assert deserialize_boc(serialize_boc(cell)) == cell


def test_too_deep_chain_is_rejected() -> None:
    cell = Cell()
    for _ in range(MAX_DEPTH):
        cell = CellBuilder().store_ref(cell).end_cell()
    with pytest.raises(CellOverflow):
        CellBuilder().store_ref(cell).end_cell()

    with pytest.raises(DecodeError, match="depth"):
        deserialize_boc(linear_boc(MAX_DEPTH + 2))
    with pytest.raises(DecodeError, match="depth"):
        deserialize_boc(linear_boc(5000))
