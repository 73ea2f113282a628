from __future__ import annotations

import base64

import pytest

from cell_abi.abi.decoding import unpack_from_cell
from cell_abi.abi.encoding import pack_into_cell
from cell_abi.abi.tokens import Token, encode_tokens, tokens_to_json
from cell_abi.abi.types import (
    BoolType,
    IntType,
    MapType,
    Param,
    UintType,
    parse_param,
    parse_params_list,
)
from cell_abi.address import Address
from cell_abi.cells import Cell, CellBuilder, boc_to_base64
from cell_abi.errors import DecodeError, SchemaError

from conftest import DEST

RICH_PARAMS = parse_params_list(
    [
        {"name": "flag", "type": "bool"},
        {"name": "small", "type": "int8"},
        {"name": "big", "type": "uint256"},
        {"name": "coins", "type": "gram"},
        {"name": "owner", "type": "address"},
        {"name": "key", "type": "pubkey"},
        {"name": "blob", "type": "bytes"},
        {"name": "tag", "type": "fixedbytes4"},
        {"name": "label", "type": "string"},
        {"name": "list", "type": "uint16[]"},
        {"name": "pair", "type": "int32[2]"},
        {"name": "ledger", "type": "map(address,uint64)"},
        {"name": "maybe", "type": "optional(uint8)"},
        {"name": "boxed", "type": "ref(string)"},
        {"name": "payload", "type": "cell"},
        {
            "name": "rows",
            "type": "tuple[]",
            "components": [
                {"name": "a", "type": "uint8"},
                {"name": "b", "type": "bool"},
            ],
        },
    ]
)

RICH_VALUES = {
    "flag": True,
    "small": -7,
    "big": str(2**256 - 1),
    "coins": "1500000000",
    "owner": DEST,
    "key": "aa" * 32,
    "blob": base64.b64encode(b"\x00\x01\x02").decode(),
    "tag": "0xdeadbeef",
    "label": "héllo",
    "list": [1, 2, 65535],
    "pair": ["-1", "0x10"],
    "ledger": {DEST: "5", "-1:" + "00" * 32: 7},
    "maybe": None,
    "boxed": "inside",
    "payload": boc_to_base64(CellBuilder().store_uint(9, 4).end_cell()),
    "rows": [{"a": 1, "b": False}, [2, True]],
}


def _roundtrip(params, values, **kw):
    tokens = encode_tokens(params, values)
    cell = pack_into_cell(tokens)
    back = unpack_from_cell(params, cell, **kw)
    assert back == tokens
    return tokens, cell


# ---------------------------------------------------------------------------
# Round trips
# ---------------------------------------------------------------------------


def test_rich_schema_roundtrip_and_json() -> None:
    tokens, cell = _roundtrip(RICH_PARAMS, RICH_VALUES)
    out = tokens_to_json(tokens)
    assert out["flag"] is True
    assert out["small"] == "-7"
    assert out["big"] == str(2**256 - 1)
    assert out["owner"] == DEST
    assert out["tag"] == base64.b64encode(bytes.fromhex("deadbeef")).decode()
    assert out["pair"] == ["-1", "16"]
    assert out["maybe"] is None
    assert out["rows"] == [{"a": "1", "b": False}, {"a": "2", "b": True}]
    # JSON output is accepted back as input
    assert encode_tokens(RICH_PARAMS, out) == tokens
    # deterministic layout
    assert pack_into_cell(encode_tokens(RICH_PARAMS, RICH_VALUES)) == cell


def test_map_entries_sorted_by_encoded_key() -> None:
    params = [Param("m", MapType(IntType(8), BoolType()))]
    tokens, _ = _roundtrip(params, {"m": [["-1", False], [1, True]]})
    assert tokens[0].value == ((1, True), (-1, False))

    addr_params = parse_params_list([{"name": "m", "type": "map(address,bool)"}])
    tokens, _ = _roundtrip(addr_params, {"m": {DEST: True, "-1:" + "00" * 32: False}})
    assert [k.workchain for k, _ in tokens[0].value] == [0, -1]


def test_empty_containers_roundtrip() -> None:
    params = parse_params_list(
        [
            {"name": "xs", "type": "uint8[]"},
            {"name": "m", "type": "map(uint32,cell)"},
            {"name": "s", "type": "string"},
            {"name": "b", "type": "bytes"},
        ]
    )
    tokens, cell = _roundtrip(params, {"xs": [], "m": {}, "s": "", "b": ""})
    assert tokens[1].value == ()


def test_long_values_spill_into_byte_chain() -> None:
    text = "x" * 1000
    params = parse_params_list([{"name": "s", "type": "string"}])
    _, cell = _roundtrip(params, {"s": text})
    chain = cell.refs[0]
    assert chain.bit_len == 127 * 8
    assert len(chain.refs) == 1


def test_bits_overflow_into_continuation_cell() -> None:
    params = [Param(f"v{i}", UintType(256)) for i in range(4)]
    _, cell = _roundtrip(params, [i for i in range(4)])
    assert cell.bit_len == 3 * 256
    assert len(cell.refs) == 1
    assert cell.refs[0].bit_len == 256


def test_refs_overflow_keeps_last_slot_for_continuation() -> None:
    params = parse_params_list([{"name": f"c{i}", "type": "cell"} for i in range(4)])
    payload = boc_to_base64(Cell())
    _, cell = _roundtrip(params, [payload] * 4)
    assert len(cell.refs) == 4
    assert len(cell.refs[3].refs) == 1


def test_gram_bounds() -> None:
    params = parse_params_list([{"name": "g", "type": "token"}])
    _roundtrip(params, {"g": 0})
    _roundtrip(params, {"g": 2**120 - 1})
    with pytest.raises(SchemaError):
        encode_tokens(params, {"g": 2**120})


# ---------------------------------------------------------------------------
# Decode failures
# ---------------------------------------------------------------------------


def test_trailing_data_requires_allow_partial() -> None:
    full = parse_params_list([{"name": "a", "type": "uint8"}, {"name": "b", "type": "uint8"}])
    cell = pack_into_cell(encode_tokens(full, [1, 2]))
    prefix = full[:1]
    with pytest.raises(DecodeError):
        unpack_from_cell(prefix, cell)
    assert unpack_from_cell(prefix, cell, allow_partial=True) == [Token("a", UintType(8), 1)]


def test_insufficient_payload() -> None:
    params = parse_params_list([{"name": "a", "type": "uint64"}])
    cell = CellBuilder().store_uint(1, 32).end_cell()
    with pytest.raises(DecodeError):
        unpack_from_cell(params, cell)


def test_map_decode_rejects_unsorted_and_empty() -> None:
    params = [Param("m", MapType(UintType(8), BoolType()))]
    unsorted = (
        CellBuilder()
        .store_uint(2, 32)
        .store_uint(5, 8)
        .store_bit(1)
        .store_uint(3, 8)
        .store_bit(0)
        .end_cell()
    )
    with pytest.raises(DecodeError):
        unpack_from_cell(params, CellBuilder().store_bit(1).store_ref(unsorted).end_cell())
    empty = CellBuilder().store_uint(0, 32).end_cell()
    with pytest.raises(DecodeError):
        unpack_from_cell(params, CellBuilder().store_bit(1).store_ref(empty).end_cell())


def test_invalid_utf8_string() -> None:
    params = parse_params_list([{"name": "s", "type": "string"}])
    chain = CellBuilder().store_bytes(b"\xff\xfe").end_cell()
    with pytest.raises(DecodeError):
        unpack_from_cell(params, CellBuilder().store_ref(chain).end_cell())


# ---------------------------------------------------------------------------
# Schema errors
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "params,values,field",
    [
        ([{"name": "a", "type": "uint8"}], {}, "a"),
        ([{"name": "a", "type": "uint8"}], {"a": 256}, "a"),
        ([{"name": "a", "type": "int8"}], {"a": -129}, "a"),
        ([{"name": "a", "type": "uint8"}], {"a": "12x"}, "a"),
        ([{"name": "a", "type": "int8"}], {"a": "0x-5"}, "a"),
        ([{"name": "a", "type": "uint32"}], {"a": "1_000"}, "a"),
        ([{"name": "a", "type": "uint8"}], {"a": "0x"}, "a"),
        ([{"name": "a", "type": "uint8"}], {"a": "+5"}, "a"),
        ([{"name": "a", "type": "bool"}], {"a": 1}, "a"),
        ([{"name": "a", "type": "uint8"}], {"a": 1, "z": 2}, "z"),
        ([{"name": "a", "type": "fixedbytes2"}], {"a": "0x00"}, "a"),
        ([{"name": "a", "type": "uint8[2]"}], {"a": [1]}, "a"),
        ([{"name": "a", "type": "address"}], {"a": "0:abc"}, "a"),
        ([{"name": "a", "type": "pubkey"}], {"a": "00"}, "a"),
        ([{"name": "a", "type": "map(uint8,bool)"}], {"a": {"1": True, "0x01": False}}, "a[0x01]"),
        (
            [{"name": "r", "type": "tuple[]", "components": [{"name": "x", "type": "uint8"}]}],
            {"r": [{"x": 1}, {"x": -1}]},
            "r[1].x",
        ),
    ],
)
def test_schema_errors_cite_field(params, values, field) -> None:
    with pytest.raises(SchemaError) as ei:
        encode_tokens(parse_params_list(params), values)
    assert ei.value.field == field


def test_address_none_requires_relaxed_mode(monkeypatch) -> None:
    from cell_abi.config import load_config

    params = [parse_param({"name": "a", "type": "address"})]
    with pytest.raises(SchemaError):
        encode_tokens(params, {"a": None})

    monkeypatch.setenv("CELL_ABI_STRICT_ADDRESS", "false")
    load_config.cache_clear()
    tokens, _ = _roundtrip(params, {"a": None})
    assert tokens[0].value is None


def test_address_text_form() -> None:
    params = [parse_param({"name": "a", "type": "address"})]
    tokens = encode_tokens(params, {"a": DEST})
    assert tokens[0].value == Address(0, b"\x11" * 32)
    assert str(tokens[0].value) == DEST


def test_integer_strings() -> None:
    params = parse_params_list([{"name": "a", "type": "int32"}])
    for text, expected in [("15", 15), ("-15", -15), ("0x0F", 15), ("-0x10", -16), (" 7 ", 7)]:
        (tok,) = encode_tokens(params, {"a": text})
        assert tok.value == expected
