"""
Tokens: schema-conformant values.

`encode_tokens` validates a JSON-like value tree against a list of Params and
normalizes it into Tokens; `tokens_to_json` renders Tokens back into plain
JSON. The normalized Python shapes are:

    bool                          -> bool
    int / uint / gram / time / expire -> int
    pubkey                        -> bytes (32) | None
    address                       -> Address | None
    cell                          -> Cell
    bytes / fixedbytes            -> bytes
    string                        -> str
    T[] / T[N]                    -> tuple of values
    map(K,V)                      -> tuple of (key, value) pairs, ascending by encoded key
    tuple                         -> tuple of Token
    optional(T)                   -> value | None
    ref(T)                        -> value

Accepted JSON input forms
-------------------------
- integers: int, or a decimal / ``0x``-prefixed hex string
- bytes: base64 text, or ``0x``-prefixed hex
- pubkey: 64 hex digits (optional ``0x``) or null
- address: ``"wc:hex"``
- cell: base64 BOC
- map: object (keys as strings) or ``[[key, value], ...]``
- tuple: object by field name or array by position
"""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from ..address import Address, parse_address
from ..cells import Cell, boc_from_base64, boc_to_base64
from ..config import load_config
from ..errors import DecodeError, SchemaError
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
    "Token",
    "encode_tokens",
    "encode_value",
    "tokens_to_json",
    "value_to_json",
    "map_key_order",
    "coerce_int",
]

MAX_TOKEN_BYTES = 15


@dataclass(frozen=True)
class Token:
    name: str
    kind: ParamType
    value: Any


# ──────────────────────────────────────────────────────────────────────────────
# Scalar coercion
# ──────────────────────────────────────────────────────────────────────────────

_HEX_RE = re.compile(r"^(?:0x)?([0-9a-fA-F]*)$")
_INT_RE = re.compile(r"^(-?)(?:0[xX]([0-9a-fA-F]+)|([0-9]+))$")


def coerce_int(value: Any, *, path: str = "") -> int:
    """Accept int (not bool) or a decimal / 0x-hex string."""
    if isinstance(value, bool):
        raise SchemaError("expected integer, got bool", field=path)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        m = _INT_RE.match(value.strip())
        if m is None:
            raise SchemaError(f"invalid integer {value!r}", field=path)
        sign, hex_digits, dec_digits = m.groups()
        n = int(hex_digits, 16) if hex_digits is not None else int(dec_digits, 10)
        return -n if sign else n
    raise SchemaError(f"expected integer, got {type(value).__name__}", field=path)


def _check_range(n: int, lo: int, hi: int, path: str, kind: str) -> int:
    if not lo <= n <= hi:
        raise SchemaError(f"value {n} out of range for {kind}", field=path)
    return n


def _coerce_bytes(value: Any, path: str) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if not isinstance(value, str):
        raise SchemaError("expected bytes as base64 or 0x-hex string", field=path)
    s = value.strip()
    if s[:2].lower() == "0x":
        try:
            return bytes.fromhex(s[2:])
        except ValueError:
            raise SchemaError("invalid hex bytes", field=path) from None
    try:
        return base64.b64decode(s, validate=True)
    except (binascii.Error, ValueError):
        raise SchemaError("invalid base64 bytes", field=path) from None


def _coerce_pubkey(value: Any, path: str) -> bytes | None:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str):
        m = _HEX_RE.match(value.strip())
        if not m or len(m.group(1)) != 64:
            raise SchemaError("public key must be 64 hex digits", field=path)
        raw = bytes.fromhex(m.group(1))
    else:
        raise SchemaError("public key must be a hex string or null", field=path)
    if len(raw) != 32:
        raise SchemaError("public key must be 32 bytes", field=path)
    return raw


def _coerce_address(value: Any, path: str) -> Address | None:
    if value is None:
        if load_config().strict_address:
            raise SchemaError("address is required", field=path)
        return None
    try:
        return parse_address(value)
    except ValueError as e:
        raise SchemaError(str(e), field=path) from None


def _coerce_cell(value: Any, path: str) -> Cell:
    if isinstance(value, Cell):
        return value
    if not isinstance(value, str):
        raise SchemaError("cell must be a base64 BOC string", field=path)
    try:
        return boc_from_base64(value)
    except DecodeError as e:
        raise SchemaError(f"invalid cell: {e.message}", field=path) from None


def map_key_order(kind: ParamType, key: Any) -> Any:
    """Sort key matching the order of encoded map keys as unsigned bitstrings."""
    if isinstance(kind, UintType):
        return key
    if isinstance(kind, IntType):
        return key & ((1 << kind.bits) - 1)
    if isinstance(kind, AddressType):
        return (key.workchain & 0xFF, key.account)
    raise SchemaError(f"unsupported map key type {kind.signature}")


# ──────────────────────────────────────────────────────────────────────────────
# Value tree -> normalized values
# ──────────────────────────────────────────────────────────────────────────────


def encode_value(kind: ParamType, value: Any, path: str = "") -> Any:
    """Validate and normalize one value against `kind`."""
    if isinstance(kind, BoolType):
        if not isinstance(value, bool):
            raise SchemaError("expected bool", field=path)
        return value
    if isinstance(kind, IntType):
        n = coerce_int(value, path=path)
        return _check_range(n, -(1 << (kind.bits - 1)), (1 << (kind.bits - 1)) - 1, path, kind.signature)
    if isinstance(kind, UintType):
        n = coerce_int(value, path=path)
        return _check_range(n, 0, (1 << kind.bits) - 1, path, kind.signature)
    if isinstance(kind, TokenType):
        n = coerce_int(value, path=path)
        return _check_range(n, 0, (1 << (8 * MAX_TOKEN_BYTES)) - 1, path, "gram")
    if isinstance(kind, TimeType):
        return _check_range(coerce_int(value, path=path), 0, (1 << 64) - 1, path, "time")
    if isinstance(kind, ExpireType):
        return _check_range(coerce_int(value, path=path), 0, (1 << 32) - 1, path, "expire")
    if isinstance(kind, PublicKeyType):
        return _coerce_pubkey(value, path)
    if isinstance(kind, AddressType):
        return _coerce_address(value, path)
    if isinstance(kind, CellType):
        return _coerce_cell(value, path)
    if isinstance(kind, BytesType):
        return _coerce_bytes(value, path)
    if isinstance(kind, FixedBytesType):
        raw = _coerce_bytes(value, path)
        if len(raw) != kind.size:
            raise SchemaError(f"expected {kind.size} bytes, got {len(raw)}", field=path)
        return raw
    if isinstance(kind, StringType):
        if not isinstance(value, str):
            raise SchemaError("expected string", field=path)
        return value
    if isinstance(kind, ArrayType):
        items = _as_list(value, path)
        if len(items) > 0xFFFFFFFF:
            raise SchemaError("array too long", field=path)
        return tuple(encode_value(kind.item, v, f"{path}[{i}]") for i, v in enumerate(items))
    if isinstance(kind, FixedArrayType):
        items = _as_list(value, path)
        if len(items) != kind.size:
            raise SchemaError(f"expected {kind.size} items, got {len(items)}", field=path)
        return tuple(encode_value(kind.item, v, f"{path}[{i}]") for i, v in enumerate(items))
    if isinstance(kind, MapType):
        return _encode_map(kind, value, path)
    if isinstance(kind, TupleType):
        return tuple(encode_tokens(kind.fields, value, path))
    if isinstance(kind, OptionalType):
        if value is None:
            return None
        return encode_value(kind.inner, value, path)
    if isinstance(kind, RefType):
        return encode_value(kind.inner, value, path)
    raise SchemaError(f"unsupported type {kind!r}", field=path)


def _as_list(value: Any, path: str) -> Sequence[Any]:
    if isinstance(value, (list, tuple)):
        return value
    raise SchemaError("expected array", field=path)


def _encode_map(kind: MapType, value: Any, path: str) -> Tuple[Tuple[Any, Any], ...]:
    if isinstance(value, Mapping):
        raw_pairs = list(value.items())
    elif isinstance(value, (list, tuple)):
        raw_pairs = []
        for i, pair in enumerate(value):
            if not isinstance(pair, (list, tuple)) or len(pair) != 2:
                raise SchemaError("map entries must be [key, value] pairs", field=f"{path}[{i}]")
            raw_pairs.append((pair[0], pair[1]))
    else:
        raise SchemaError("expected map as object or list of pairs", field=path)

    out: Dict[Any, Tuple[Any, Any]] = {}
    for raw_key, raw_val in raw_pairs:
        key_path = f"{path}[{raw_key}]"
        key = encode_value(kind.key, raw_key, key_path)
        if key is None:
            raise SchemaError("map key must not be null", field=key_path)
        order = map_key_order(kind.key, key)
        if order in out:
            raise SchemaError("duplicate map key", field=key_path)
        out[order] = (key, encode_value(kind.value, raw_val, key_path))
    return tuple(out[k] for k in sorted(out))


def encode_tokens(params: Sequence[Param], values: Any, path: str = "") -> List[Token]:
    """
    Build Tokens for `params` from a name-keyed mapping or a positional
    sequence. Raises SchemaError naming the first offending field.
    """
    prefix = f"{path}." if path else ""
    if values is None and not params:
        return []
    if isinstance(values, Mapping):
        known = {p.name for p in params}
        for extra in values:
            if extra not in known:
                raise SchemaError("unexpected field", field=f"{prefix}{extra}")
        out = []
        for p in params:
            if p.name not in values:
                raise SchemaError("missing field", field=f"{prefix}{p.name}")
            out.append(Token(p.name, p.kind, encode_value(p.kind, values[p.name], prefix + p.name)))
        return out
    if isinstance(values, (list, tuple)):
        if len(values) != len(params):
            raise SchemaError(f"expected {len(params)} values, got {len(values)}", field=path)
        return [
            Token(p.name, p.kind, encode_value(p.kind, v, prefix + p.name))
            for p, v in zip(params, values)
        ]
    raise SchemaError("expected object or array of values", field=path)


# ──────────────────────────────────────────────────────────────────────────────
# Normalized values -> JSON
# ──────────────────────────────────────────────────────────────────────────────


def value_to_json(kind: ParamType, value: Any) -> Any:
    if isinstance(kind, BoolType):
        return value
    if isinstance(kind, (IntType, UintType, TokenType, TimeType, ExpireType)):
        return str(value)
    if isinstance(kind, PublicKeyType):
        return None if value is None else value.hex()
    if isinstance(kind, AddressType):
        return None if value is None else str(value)
    if isinstance(kind, CellType):
        return boc_to_base64(value)
    if isinstance(kind, (BytesType, FixedBytesType)):
        return base64.b64encode(value).decode("ascii")
    if isinstance(kind, StringType):
        return value
    if isinstance(kind, (ArrayType, FixedArrayType)):
        return [value_to_json(kind.item, v) for v in value]
    if isinstance(kind, MapType):
        return {str(value_to_json(kind.key, k)): value_to_json(kind.value, v) for k, v in value}
    if isinstance(kind, TupleType):
        return tokens_to_json(value)
    if isinstance(kind, OptionalType):
        return None if value is None else value_to_json(kind.inner, value)
    if isinstance(kind, RefType):
        return value_to_json(kind.inner, value)
    raise TypeError(f"unsupported type {kind!r}")


def tokens_to_json(tokens: Sequence[Token]) -> Dict[str, Any]:
    """Render Tokens as a name-keyed JSON object (accepted back by encode_tokens)."""
    return {t.name: value_to_json(t.kind, t.value) for t in tokens}
