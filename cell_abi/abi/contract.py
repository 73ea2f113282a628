"""
Contract ABI model: functions, events, headers, persistent data.

The descriptor is the JSON document produced by the contract compiler:

    {
      "ABI version": 2,
      "version": "2.2",
      "header": ["pubkey", "time", "expire"],
      "functions": [{"name", "inputs", "outputs", "id"?}],
      "events":    [{"name", "inputs", "id"?}],
      "data":      [{"key", "name", "type"}],
      "fields":    [{"name", "type"}]
    }

Ids
---
    function id = sha256("name(in,...)(out,...)v<major>")[:4]   (big-endian u32)
    input_id    = id & 0x7FFFFFFF
    output_id   = id | 0x80000000
    event id    = sha256("name(in,...)v<major>")[:4] & 0x7FFFFFFF

An explicit "id" in the descriptor replaces the computed hash.

Bodies
------
Internal call:  input_id:uint32, inputs...
External call:  sig_flag:1 [signature:512] header... input_id:uint32 inputs...
                (the first cell reserves 513 bits for the signature part)
Output / event: id:uint32, values...
"""

from __future__ import annotations

import hashlib
import json
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..cells import Cell
from ..errors import ContractError, DecodeError, GrammarError
from ..logging import get_logger
from .decoding import ChainReader, read_token, unpack_tokens
from .encoding import ChainWriter, pack_values
from .tokens import Token, encode_tokens
from .types import (
    ExpireType,
    Param,
    PublicKeyType,
    TimeType,
    parse_param,
)

__all__ = [
    "SIGNATURE_BITS",
    "BODY_RESERVED_BITS",
    "AbiVersion",
    "DataItem",
    "Function",
    "Event",
    "Contract",
    "ContractCache",
    "function_signature",
    "event_signature",
    "read_external_header",
]

log = get_logger(__name__)

SIGNATURE_BITS = 512
BODY_RESERVED_BITS = 1 + SIGNATURE_BITS

_HEADER_TYPES = {
    "pubkey": PublicKeyType(),
    "time": TimeType(),
    "expire": ExpireType(),
}


@dataclass(frozen=True, order=True)
class AbiVersion:
    major: int
    minor: int = 0

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"

    @classmethod
    def parse(cls, doc: Mapping[str, Any]) -> "AbiVersion":
        text = doc.get("version")
        if isinstance(text, str):
            try:
                major, _, minor = text.partition(".")
                return cls(int(major), int(minor or 0))
            except ValueError:
                raise ContractError(f"invalid ABI version {text!r}") from None
        raw = doc.get("ABI version", 2)
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise ContractError("'ABI version' must be an integer")
        return cls(raw, 0)


def _id_from_signature(sig: str) -> int:
    return int.from_bytes(hashlib.sha256(sig.encode("utf-8")).digest()[:4], "big")


def function_signature(
    name: str, inputs: Sequence[Param], outputs: Sequence[Param], version: AbiVersion
) -> str:
    ins = ",".join(p.kind.signature for p in inputs)
    outs = ",".join(p.kind.signature for p in outputs)
    return f"{name}({ins})({outs})v{version.major}"


def event_signature(name: str, inputs: Sequence[Param], version: AbiVersion) -> str:
    ins = ",".join(p.kind.signature for p in inputs)
    return f"{name}({ins})v{version.major}"


def _explicit_id(raw: Any, where: str) -> Optional[int]:
    if raw is None:
        return None
    try:
        if isinstance(raw, str):
            n = int(raw, 16) if raw.lower().startswith("0x") else int(raw)
        elif isinstance(raw, int) and not isinstance(raw, bool):
            n = raw
        else:
            raise ValueError(raw)
    except ValueError:
        raise ContractError(f"invalid id for {where}", id=str(raw)) from None
    if not 0 <= n <= 0xFFFFFFFF:
        raise ContractError(f"id for {where} does not fit in uint32", id=n)
    return n


# ──────────────────────────────────────────────────────────────────────────────
# Functions & events
# ──────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Function:
    name: str
    header: Tuple[Param, ...]
    inputs: Tuple[Param, ...]
    outputs: Tuple[Param, ...]
    input_id: int
    output_id: int

    # ---------------- encoding ----------------

    def encode_inputs(self, values: Any) -> List[Token]:
        return encode_tokens(self.inputs, values)

    def encode_internal_input(self, tokens: Sequence[Token]) -> Cell:
        """Internal call body: input_id followed by the inputs."""
        w = ChainWriter()
        w.slot((32, 0)).store_uint(self.input_id, 32)
        pack_values(w, tokens)
        return w.end()

    def encode_external_payload(
        self, header_values: Mapping[str, Any], tokens: Sequence[Token]
    ) -> Cell:
        """
        External call payload (everything after the signature part).

        The first cell leaves room for the signature flag and signature so the
        payload contents can be prepended with either later.
        """
        header_tokens = encode_tokens(
            self.header, {p.name: header_values.get(p.name) for p in self.header}, "header"
        )
        w = ChainWriter(reserved_bits=BODY_RESERVED_BITS)
        pack_values(w, header_tokens)
        w.slot((32, 0)).store_uint(self.input_id, 32)
        pack_values(w, tokens)
        return w.end()

    def encode_output(self, tokens: Sequence[Token]) -> Cell:
        w = ChainWriter()
        w.slot((32, 0)).store_uint(self.output_id, 32)
        pack_values(w, tokens)
        return w.end()

    # ---------------- decoding ----------------

    def decode_input(self, body: Cell, internal: bool, allow_partial: bool = False) -> List[Token]:
        if internal:
            r = ChainReader(body)
        else:
            r, _ = read_external_header(self.header, body)
        _expect_id(r, self.input_id, self.name)
        return unpack_tokens(self.inputs, r, allow_partial)

    def decode_output(self, body: Cell, allow_partial: bool = False) -> List[Token]:
        r = ChainReader(body)
        _expect_id(r, self.output_id, self.name)
        return unpack_tokens(self.outputs, r, allow_partial)


@dataclass(frozen=True)
class Event:
    name: str
    inputs: Tuple[Param, ...]
    id: int

    def encode_body(self, tokens: Sequence[Token]) -> Cell:
        w = ChainWriter()
        w.slot((32, 0)).store_uint(self.id, 32)
        pack_values(w, tokens)
        return w.end()

    def decode_body(self, body: Cell, allow_partial: bool = False) -> List[Token]:
        r = ChainReader(body)
        _expect_id(r, self.id, self.name)
        return unpack_tokens(self.inputs, r, allow_partial)


def read_external_header(
    header: Sequence[Param], body: Cell
) -> Tuple[ChainReader, List[Token]]:
    """Skip the signature part and read the header; returns the positioned reader."""
    s = body.begin_parse()
    if s.load_bit():
        s.skip_bits(SIGNATURE_BITS)
    r = ChainReader(s, bit_offset=BODY_RESERVED_BITS - s.consumed_bits)
    tokens = [Token(p.name, p.kind, read_token(r, p.kind)) for p in header]
    return r, tokens


def _expect_id(r: ChainReader, expected: int, name: str) -> None:
    got = r.slot((32, 0)).load_uint(32)
    if got != expected:
        raise DecodeError(
            "message id does not match", item=name, expected=f"{expected:#010x}", got=f"{got:#010x}"
        )


@dataclass(frozen=True)
class DataItem:
    key: int
    param: Param


# ──────────────────────────────────────────────────────────────────────────────
# Contract
# ──────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Contract:
    abi_version: AbiVersion
    header: Tuple[Param, ...]
    functions: Tuple[Function, ...]
    events: Tuple[Event, ...]
    data: Tuple[DataItem, ...] = ()
    fields: Tuple[Param, ...] = ()

    _by_name: Dict[str, Function] = field(init=False, repr=False, compare=False)
    _by_input_id: Dict[int, Function] = field(init=False, repr=False, compare=False)
    _events_by_name: Dict[str, Event] = field(init=False, repr=False, compare=False)
    _events_by_id: Dict[int, Event] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        by_name: Dict[str, Function] = {}
        for f in self.functions:
            if f.name in by_name:
                raise ContractError("duplicate function name", name=f.name)
            by_name[f.name] = f
        ev_by_name: Dict[str, Event] = {}
        for e in self.events:
            if e.name in ev_by_name:
                raise ContractError("duplicate event name", name=e.name)
            ev_by_name[e.name] = e
        object.__setattr__(self, "_by_name", by_name)
        object.__setattr__(self, "_by_input_id", {f.input_id: f for f in self.functions})
        object.__setattr__(self, "_events_by_name", ev_by_name)
        object.__setattr__(self, "_events_by_id", {e.id: e for e in self.events})

    # ---------------- lookups ----------------

    def function(self, name: str) -> Optional[Function]:
        return self._by_name.get(name)

    def require_function(self, name: str) -> Function:
        fn = self._by_name.get(name)
        if fn is None:
            raise ContractError("unknown function", name=name)
        return fn

    def function_by_input_id(self, fid: int) -> Optional[Function]:
        return self._by_input_id.get(fid)

    def event(self, name: str) -> Optional[Event]:
        return self._events_by_name.get(name)

    def event_by_id(self, eid: int) -> Optional[Event]:
        return self._events_by_id.get(eid)

    def unpack_fields(self, cell: Cell, allow_partial: bool = False) -> List[Token]:
        """Decode persistent contract fields laid out like a token chain."""
        return unpack_tokens(self.fields, ChainReader(cell), allow_partial)

    # ---------------- loading ----------------

    @classmethod
    def load(cls, abi: str | Mapping[str, Any]) -> "Contract":
        """Parse a contract descriptor from JSON text or an already-decoded mapping."""
        if isinstance(abi, str):
            try:
                doc = json.loads(abi)
            except json.JSONDecodeError as e:
                raise ContractError(f"contract ABI is not valid JSON: {e}") from e
        else:
            doc = abi
        if not isinstance(doc, Mapping):
            raise ContractError("contract ABI must be a JSON object")

        version = AbiVersion.parse(doc)
        if version.major != 2:
            raise ContractError("unsupported ABI version", version=str(version))

        try:
            header = tuple(_header_param(h) for h in _list(doc, "header"))
            functions = tuple(_load_function(f, header, version) for f in _list(doc, "functions"))
            events = tuple(_load_event(e, version) for e in _list(doc, "events"))
            data = tuple(
                DataItem(key=_data_key(d), param=parse_param(d)) for d in _list(doc, "data")
            )
            fields = tuple(parse_param(p) for p in _list(doc, "fields"))
        except GrammarError as e:
            raise ContractError(f"invalid type in contract ABI: {e.message}", **e.data) from e

        contract = cls(
            abi_version=version,
            header=header,
            functions=functions,
            events=events,
            data=data,
            fields=fields,
        )
        log.debug(
            "contract loaded",
            extra={"functions": len(functions), "events": len(events), "abi": str(version)},
        )
        return contract


def _list(doc: Mapping[str, Any], key: str) -> List[Any]:
    raw = doc.get(key) or []
    if not isinstance(raw, list):
        raise ContractError(f"'{key}' must be an array")
    return raw


def _header_param(h: Any) -> Param:
    if isinstance(h, str):
        kind = _HEADER_TYPES.get(h)
        if kind is None:
            raise ContractError("unknown header field", name=h)
        return Param(h, kind)
    if isinstance(h, Mapping):
        return parse_param(h)
    raise ContractError("header entries must be strings or params")


def _data_key(d: Any) -> int:
    key = d.get("key") if isinstance(d, Mapping) else None
    if isinstance(key, bool) or not isinstance(key, int) or key < 0:
        raise ContractError("data item key must be a non-negative integer")
    return key


def _named(obj: Any, what: str) -> str:
    if not isinstance(obj, Mapping) or not isinstance(obj.get("name"), str):
        raise ContractError(f"{what} must be an object with a name")
    return obj["name"]


def _params(obj: Mapping[str, Any], key: str) -> Tuple[Param, ...]:
    raw = obj.get(key) or []
    if not isinstance(raw, list):
        raise ContractError(f"'{key}' must be an array", item=obj.get("name"))
    return tuple(parse_param(p) for p in raw)


def _load_function(obj: Any, header: Tuple[Param, ...], version: AbiVersion) -> Function:
    name = _named(obj, "function")
    inputs = _params(obj, "inputs")
    outputs = _params(obj, "outputs")
    fid = _explicit_id(obj.get("id"), name)
    if fid is None:
        fid = _id_from_signature(function_signature(name, inputs, outputs, version))
    return Function(
        name=name,
        header=header,
        inputs=inputs,
        outputs=outputs,
        input_id=fid & 0x7FFFFFFF,
        output_id=fid | 0x80000000,
    )


def _load_event(obj: Any, version: AbiVersion) -> Event:
    name = _named(obj, "event")
    inputs = _params(obj, "inputs")
    eid = _explicit_id(obj.get("id"), name)
    if eid is None:
        eid = _id_from_signature(event_signature(name, inputs, version))
    return Event(name=name, inputs=inputs, id=eid & 0x7FFFFFFF)


# ──────────────────────────────────────────────────────────────────────────────
# Cache
# ──────────────────────────────────────────────────────────────────────────────


class ContractCache:
    """
    Bounded LRU of parsed contracts keyed by descriptor text.

    Callers own an instance and pass it where parsing should be shared; a
    contract is immutable, so one parse serves any number of threads.
    """

    def __init__(self, capacity: int = 64) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._items: "OrderedDict[str, Contract]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._items)

    def get(self, abi: str) -> Contract:
        with self._lock:
            hit = self._items.get(abi)
            if hit is not None:
                self._items.move_to_end(abi)
                return hit
        contract = Contract.load(abi)
        with self._lock:
            self._items[abi] = contract
            self._items.move_to_end(abi)
            while len(self._items) > self._capacity:
                self._items.popitem(last=False)
        return contract

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
