"""
JSON facade.

Every operation takes strings (JSON text, base64 BOCs, addresses) and returns
an envelope instead of raising:

    {"type": "ok",  "data": <result>}
    {"type": "err", "data": "<message>"}

Contract descriptors are parsed once per distinct text through the facade's
ContractCache.
"""

from __future__ import annotations

import base64
import binascii
import functools
import json
from typing import Any, Callable, Dict, Optional, TypeVar

from .abi.contract import ContractCache
from .abi.decoding import unpack_from_cell as _unpack_from_cell
from .abi.encoding import pack_into_cell as _pack_into_cell
from .abi.tokens import encode_tokens, tokens_to_json
from .abi.types import parse_params_list
from .cells import boc_from_base64, boc_hash, boc_to_base64
from .errors import AbiKitError, MessageError, SchemaError, ensure_abi_error
from .local import LocalExecutor
from .local import run_local as _run_local
from . import matcher as _matcher
from . import messages as _messages
from .logging import bind, get_logger, trace_scope
from .payloads import parse_known_payload as _parse_known_payload
from .transaction import Transaction
from .transaction import decode_transaction as _decode_transaction
from .transaction import decode_transaction_events as _decode_transaction_events

__all__ = [
    "CONTRACTS",
    "ok",
    "err",
    "check_public_key",
    "run_local",
    "encode_internal_input",
    "create_external_message_without_signature",
    "create_external_message",
    "complete_external_message",
    "parse_known_payload",
    "decode_input",
    "decode_event",
    "decode_output",
    "decode_transaction",
    "decode_transaction_events",
    "get_boc_hash",
    "pack_into_cell",
    "unpack_from_cell",
]

log = get_logger(__name__)

CONTRACTS = ContractCache()

F = TypeVar("F", bound=Callable[..., Any])


def ok(data: Any) -> Dict[str, Any]:
    return {"type": "ok", "data": data}


def err(message: str) -> Dict[str, Any]:
    return {"type": "err", "data": message}


def _boundary(fn: F) -> F:
    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Dict[str, Any]:
        with trace_scope():
            bind(component="api", op=fn.__name__)
            try:
                return ok(fn(*args, **kwargs))
            except AbiKitError as e:
                log.debug("operation failed", extra={"code": e.to_dict()["code"]})
                return err(str(e))
            except (ValueError, TypeError) as e:
                wrapped = ensure_abi_error(e)
                log.debug("operation failed", extra={"code": wrapped.to_dict()["code"]})
                return err(wrapped.message)

    return wrapper  # type: ignore[return-value]


def _json(text: str, what: str) -> Any:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise SchemaError(f"{what} is not valid JSON: {e}") from None


@_boundary
def check_public_key(public_key: str) -> None:
    _messages.check_public_key(public_key)
    return None


@_boundary
def run_local(
    account_state: str,
    contract_abi: str,
    method: str,
    input: str,
    responsible: bool,
    executor: LocalExecutor,
) -> Dict[str, Any]:
    contract = CONTRACTS.get(contract_abi)
    out = _run_local(account_state, contract, method, _json(input, "input"), responsible, executor)
    return out.to_json()


@_boundary
def encode_internal_input(contract_abi: str, method: str, input: str) -> str:
    return _messages.encode_internal_input(CONTRACTS.get(contract_abi), method, _json(input, "input"))


@_boundary
def create_external_message_without_signature(
    dst: str,
    contract_abi: str,
    method: str,
    state_init: Optional[str],
    input: str,
    timeout: int,
) -> Dict[str, Any]:
    signed = _messages.create_external_message_without_signature(
        dst, CONTRACTS.get(contract_abi), method, state_init, _json(input, "input"), timeout
    )
    return signed.to_json()


@_boundary
def create_external_message(
    dst: str,
    contract_abi: str,
    method: str,
    state_init: Optional[str],
    input: str,
    public_key: str,
    timeout: int,
) -> _messages.UnsignedMessage:
    """The envelope's data is the UnsignedMessage value object itself."""
    return _messages.create_external_message(
        dst, CONTRACTS.get(contract_abi), method, state_init, _json(input, "input"), public_key, timeout
    )


@_boundary
def complete_external_message(unsigned: _messages.UnsignedMessage, signature: str) -> Dict[str, Any]:
    """Finish a deferred-signature message with a base64 signature."""
    try:
        raw = base64.b64decode(signature, validate=True)
    except (binascii.Error, ValueError):
        raise MessageError("signature must be base64") from None
    return unsigned.complete(raw).to_json()


@_boundary
def parse_known_payload(payload: str) -> Optional[Dict[str, Any]]:
    return _parse_known_payload(payload)


@_boundary
def decode_input(message_body: str, contract_abi: str, method: str, internal: bool) -> Optional[Dict[str, Any]]:
    decoded = _matcher.decode_input(
        CONTRACTS.get(contract_abi),
        boc_from_base64(message_body),
        _matcher.parse_method_name(method),
        internal,
    )
    return None if decoded is None else decoded.to_json()


@_boundary
def decode_event(message_body: str, contract_abi: str, event: str) -> Optional[Dict[str, Any]]:
    decoded = _matcher.decode_event(
        CONTRACTS.get(contract_abi), boc_from_base64(message_body), _matcher.parse_method_name(event)
    )
    return None if decoded is None else decoded.to_json()


@_boundary
def decode_output(message_body: str, contract_abi: str, method: str) -> Optional[Dict[str, Any]]:
    decoded = _matcher.decode_output(
        CONTRACTS.get(contract_abi), boc_from_base64(message_body), _matcher.parse_method_name(method)
    )
    return None if decoded is None else decoded.to_json()


@_boundary
def decode_transaction(transaction: str, contract_abi: str, method: str) -> Optional[Dict[str, Any]]:
    tx = Transaction.from_json(transaction)
    decoded = _decode_transaction(CONTRACTS.get(contract_abi), tx, _matcher.parse_method_name(method))
    return None if decoded is None else decoded.to_json()


@_boundary
def decode_transaction_events(transaction: str, contract_abi: str) -> list:
    tx = Transaction.from_json(transaction)
    return [e.to_json() for e in _decode_transaction_events(CONTRACTS.get(contract_abi), tx)]


@_boundary
def get_boc_hash(boc: str) -> str:
    return boc_hash(boc)


@_boundary
def pack_into_cell(params: str, tokens: str) -> str:
    parsed = parse_params_list(params)
    values = encode_tokens(parsed, _json(tokens, "tokens"))
    return boc_to_base64(_pack_into_cell(values))


@_boundary
def unpack_from_cell(params: str, boc: str, allow_partial: bool) -> Dict[str, Any]:
    parsed = parse_params_list(params)
    return tokens_to_json(_unpack_from_cell(parsed, boc_from_base64(boc), allow_partial))
