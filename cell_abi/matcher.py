"""
Function / event matching.

A body is attributed to a declared function or event either by exact name
(`KnownName`) or by comparing its leading 32-bit id against a list of
candidates (`GuessInRange`; `names=None` means every declared item). A failed
match is the `MISS` value, never an exception.

Event scanning is best-effort: a body whose id matches no event, or whose
decode fails, is skipped and the scan continues.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Generic, Iterable, List, Optional, Sequence, Tuple, TypeVar, Union

from .abi.contract import Contract, Event, Function, read_external_header
from .abi.tokens import Token, tokens_to_json
from .cells import Cell
from .errors import AbiKitError, DecodeError, GrammarError
from .logging import get_logger

__all__ = [
    "KnownName",
    "GuessInRange",
    "MethodName",
    "Match",
    "MISS",
    "parse_method_name",
    "read_function_id",
    "read_input_function_id",
    "match_function",
    "match_output",
    "match_event",
    "DecodedInput",
    "DecodedOutput",
    "DecodedEvent",
    "decode_input",
    "decode_output",
    "decode_event",
    "scan_event",
    "scan_events",
]

log = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class KnownName:
    name: str


@dataclass(frozen=True)
class GuessInRange:
    names: Optional[Tuple[str, ...]] = None


MethodName = Union[KnownName, GuessInRange]


@dataclass(frozen=True)
class Match(Generic[T]):
    item: T


class _Miss:
    __slots__ = ()

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISS"


MISS = _Miss()


def parse_method_name(value: Any) -> MethodName:
    """
    Accept a name or a list of candidate names, as Python values or JSON text.

    A JSON string selects KnownName, a JSON array of strings GuessInRange.
    """
    if isinstance(value, (KnownName, GuessInRange)):
        return value
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            raise GrammarError("ExpectedStringOrArray") from None
    if isinstance(value, str):
        return KnownName(value)
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return GuessInRange(tuple(value))
    raise GrammarError("ExpectedStringOrArray")


# ──────────────────────────────────────────────────────────────────────────────
# Ids
# ──────────────────────────────────────────────────────────────────────────────


def read_function_id(body: Cell) -> int:
    """Leading uint32 of an internal, output or event body."""
    return body.begin_parse().load_uint(32)


def read_input_function_id(contract: Contract, body: Cell, internal: bool) -> int:
    """Input id of a call body; external bodies skip the signature part and header."""
    if internal:
        return read_function_id(body)
    r, _ = read_external_header(contract.header, body)
    return r.slot((32, 0)).load_uint(32)


def _candidates(items: Sequence[T], lookup, names: Optional[Tuple[str, ...]]) -> Iterable[T]:
    if names is None:
        return items
    return (x for x in (lookup(n) for n in names) if x is not None)


def match_function(
    contract: Contract, body: Cell, method: MethodName, internal: bool
) -> Match[Function] | _Miss:
    if isinstance(method, KnownName):
        fn = contract.function(method.name)
        return MISS if fn is None else Match(fn)
    try:
        fid = read_input_function_id(contract, body, internal)
    except DecodeError:
        log.debug("body too short for a function id")
        return MISS
    for fn in _candidates(contract.functions, contract.function, method.names):
        if fn.input_id == fid:
            return Match(fn)
    return MISS


def match_output(contract: Contract, body: Cell, method: MethodName) -> Match[Function] | _Miss:
    if isinstance(method, KnownName):
        fn = contract.function(method.name)
        return MISS if fn is None else Match(fn)
    try:
        fid = read_function_id(body)
    except DecodeError:
        return MISS
    for fn in _candidates(contract.functions, contract.function, method.names):
        if fn.output_id == fid:
            return Match(fn)
    return MISS


def match_event(contract: Contract, body: Cell, event: MethodName) -> Match[Event] | _Miss:
    if isinstance(event, KnownName):
        ev = contract.event(event.name)
        return MISS if ev is None else Match(ev)
    try:
        eid = read_function_id(body)
    except DecodeError:
        return MISS
    for ev in _candidates(contract.events, contract.event, event.names):
        if ev.id == eid:
            return Match(ev)
    return MISS


# ──────────────────────────────────────────────────────────────────────────────
# Decoded artifacts
# ──────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DecodedInput:
    method: str
    input: List[Token]

    def to_json(self) -> Dict[str, Any]:
        return {"method": self.method, "input": tokens_to_json(self.input)}


@dataclass(frozen=True)
class DecodedOutput:
    method: str
    output: List[Token]

    def to_json(self) -> Dict[str, Any]:
        return {"method": self.method, "output": tokens_to_json(self.output)}


@dataclass(frozen=True)
class DecodedEvent:
    event: str
    data: List[Token]

    def to_json(self) -> Dict[str, Any]:
        return {"event": self.event, "data": tokens_to_json(self.data)}


def decode_input(
    contract: Contract, body: Cell, method: MethodName, internal: bool
) -> Optional[DecodedInput]:
    m = match_function(contract, body, method, internal)
    if not m:
        return None
    fn = m.item
    return DecodedInput(fn.name, fn.decode_input(body, internal))


def decode_output(contract: Contract, body: Cell, method: MethodName) -> Optional[DecodedOutput]:
    m = match_output(contract, body, method)
    if not m:
        return None
    fn = m.item
    return DecodedOutput(fn.name, fn.decode_output(body))


def decode_event(contract: Contract, body: Cell, event: MethodName) -> Optional[DecodedEvent]:
    m = match_event(contract, body, event)
    if not m:
        return None
    ev = m.item
    return DecodedEvent(ev.name, ev.decode_body(body))


# ──────────────────────────────────────────────────────────────────────────────
# Best-effort scans
# ──────────────────────────────────────────────────────────────────────────────


def scan_event(contract: Contract, body: Cell) -> Optional[DecodedEvent]:
    """Decode `body` as whichever declared event its id names; None on any failure."""
    try:
        eid = read_function_id(body)
    except DecodeError:
        return None
    ev = contract.event_by_id(eid)
    if ev is None:
        return None
    try:
        return DecodedEvent(ev.name, ev.decode_body(body))
    except AbiKitError as e:
        log.debug("skipping undecodable event", extra={"event": ev.name, "reason": e.message})
        return None


def scan_events(contract: Contract, bodies: Iterable[Cell]) -> List[DecodedEvent]:
    out = []
    for body in bodies:
        ev = scan_event(contract, body)
        if ev is not None:
            out.append(ev)
    return out
