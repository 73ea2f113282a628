"""
Transaction decoding.

A transaction record is JSON:

    {
      "inMsg":   {"src"?: "wc:hex", "dst"?: "wc:hex", "body"?: <boc>},
      "outMsgs": [{"dst"?: "wc:hex", "body"?: <boc>}, ...]
    }

where <boc> is a base64 BOC or an object holding it under "data" (or
"boc").

Decoding a call:
  1. internal when the inbound message has a source, external otherwise;
  2. no inbound body -> None;
  3. match the inbound body to a function (MISS -> None) and decode its input;
  4. destination-less outbound messages carry return values; one of them
     without a body is a MalformedTransaction;
  5. the first carrier whose id equals the function's output id is decoded
     as the output; other carriers (events) are passed over.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .abi.contract import Contract, Function
from .abi.tokens import Token, tokens_to_json
from .address import Address, parse_address
from .cells import Cell, boc_from_base64
from .errors import MalformedTransaction
from .logging import get_logger, with_fields
from .matcher import DecodedEvent, MethodName, match_function, read_function_id, scan_events

__all__ = [
    "InMessage",
    "OutMessage",
    "Transaction",
    "DecodedTransaction",
    "return_bodies",
    "process_raw_outputs",
    "decode_transaction",
    "decode_transaction_events",
]

log = get_logger(__name__)


@dataclass(frozen=True)
class InMessage:
    src: Optional[Address] = None
    dst: Optional[Address] = None
    body: Optional[Cell] = None


@dataclass(frozen=True)
class OutMessage:
    dst: Optional[Address] = None
    body: Optional[Cell] = None


def _opt_address(obj: Mapping[str, Any], key: str) -> Optional[Address]:
    raw = obj.get(key)
    if raw is None or raw == "":
        return None
    try:
        return parse_address(raw)
    except ValueError as e:
        raise MalformedTransaction(f"invalid {key} address: {e}") from None


def _opt_body(obj: Mapping[str, Any]) -> Optional[Cell]:
    raw = obj.get("body")
    if raw is None:
        return None
    if isinstance(raw, Mapping):
        raw = raw.get("data", raw.get("boc"))
    if not isinstance(raw, str):
        raise MalformedTransaction("message body must be a base64 BOC")
    return boc_from_base64(raw)


@dataclass(frozen=True)
class Transaction:
    in_msg: InMessage
    out_msgs: Tuple[OutMessage, ...] = ()

    @classmethod
    def from_json(cls, tx: str | Mapping[str, Any]) -> "Transaction":
        if isinstance(tx, str):
            try:
                tx = json.loads(tx)
            except json.JSONDecodeError as e:
                raise MalformedTransaction(f"transaction is not valid JSON: {e}") from e
        if not isinstance(tx, Mapping):
            raise MalformedTransaction("transaction must be a JSON object")
        raw_in = tx.get("inMsg")
        if not isinstance(raw_in, Mapping):
            raise MalformedTransaction("transaction has no inMsg")
        raw_out = tx.get("outMsgs") or []
        if not isinstance(raw_out, list) or not all(isinstance(m, Mapping) for m in raw_out):
            raise MalformedTransaction("outMsgs must be an array of objects")
        in_msg = InMessage(
            src=_opt_address(raw_in, "src"),
            dst=_opt_address(raw_in, "dst"),
            body=_opt_body(raw_in),
        )
        out_msgs = tuple(OutMessage(dst=_opt_address(m, "dst"), body=_opt_body(m)) for m in raw_out)
        return cls(in_msg=in_msg, out_msgs=out_msgs)


@dataclass(frozen=True)
class DecodedTransaction:
    method: str
    input: List[Token]
    output: List[Token]

    def to_json(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "input": tokens_to_json(self.input),
            "output": tokens_to_json(self.output),
        }


def return_bodies(tx: Transaction) -> List[Cell]:
    """Bodies of destination-less outbound messages, in transaction order."""
    out = []
    for i, msg in enumerate(tx.out_msgs):
        if msg.dst is not None:
            continue
        if msg.body is None:
            raise MalformedTransaction("Expected message body", index=i)
        out.append(msg.body)
    return out


def process_raw_outputs(bodies: Sequence[Cell], function: Function) -> List[Token]:
    """Pick the return-value carrier among `bodies` and decode it."""
    for body in bodies:
        if read_function_id(body) != function.output_id:
            continue
        return function.decode_output(body)
    if function.outputs:
        raise MalformedTransaction("no output message produced", method=function.name)
    return []


def decode_transaction(
    contract: Contract, tx: Transaction, method: MethodName
) -> Optional[DecodedTransaction]:
    internal = tx.in_msg.src is not None
    body = tx.in_msg.body
    if body is None:
        return None
    m = match_function(contract, body, method, internal)
    if not m:
        log.debug("inbound body matches no candidate function")
        return None
    fn = m.item
    tlog = with_fields(log, method=fn.name, internal=internal)
    inputs = fn.decode_input(body, internal)
    bodies = return_bodies(tx)
    outputs = process_raw_outputs(bodies, fn)
    tlog.debug("transaction decoded", extra={"carriers": len(bodies)})
    return DecodedTransaction(method=fn.name, input=inputs, output=outputs)


def decode_transaction_events(contract: Contract, tx: Transaction) -> List[DecodedEvent]:
    return scan_events(contract, return_bodies(tx))
