"""
Call bodies and external message envelopes.

Two external paths:

- create_external_message_without_signature: the body carries a `0`
  signature flag and no public key; the message is ready to send.
- create_external_message: returns an UnsignedMessage value object
  {dst, expire_at, hash, body}. It is not sendable; an external signer signs
  `hash` and `complete(signature)` produces the final SignedMessage. This
  module never signs.

Both read the reference time from a single Clock exactly once per build, so
`time` and `expire` in the header always come from the same instant:

    expire = time_ms // 1000 + timeout

Envelope (ext_in_msg_info):

    10 | src addr_none (00) | dst addr_std | import_fee (0000)
       | Maybe (Either StateInit ^StateInit) | Either X ^X   (body always as ref)
"""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Protocol, Sequence

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from .abi.contract import SIGNATURE_BITS, Contract, Function
from .abi.tokens import Token
from .address import Address, parse_address, store_address
from .cells import Cell, CellBuilder, boc_from_base64, boc_to_base64
from .config import load_config
from .errors import DecodeError, MessageError
from .logging import get_logger

__all__ = [
    "Clock",
    "SimpleClock",
    "ConstantClock",
    "OffsetClock",
    "CLOCK",
    "ExpireAt",
    "Message",
    "SignedMessage",
    "UnsignedMessage",
    "check_public_key",
    "encode_internal_input",
    "create_external_message_without_signature",
    "create_external_message",
]

log = get_logger(__name__)

SIGNATURE_BYTES = SIGNATURE_BITS // 8


# ──────────────────────────────────────────────────────────────────────────────
# Clocks
# ──────────────────────────────────────────────────────────────────────────────


class Clock(Protocol):
    def now_ms(self) -> int: ...


class SimpleClock:
    """Wall clock in unix milliseconds."""

    def now_ms(self) -> int:
        return time.time_ns() // 1_000_000


@dataclass(frozen=True)
class ConstantClock:
    time_ms: int

    def now_ms(self) -> int:
        return self.time_ms


@dataclass
class OffsetClock:
    """Wall clock shifted by `offset_ms` (e.g. to follow the chain's clock)."""

    offset_ms: int = 0

    def now_ms(self) -> int:
        return time.time_ns() // 1_000_000 + self.offset_ms


CLOCK: Clock = SimpleClock()


@dataclass(frozen=True)
class ExpireAt:
    timeout: int
    timestamp: int

    @classmethod
    def from_timeout(cls, timeout: int, now_ms: int) -> "ExpireAt":
        if timeout < 0:
            raise MessageError("timeout must be non-negative", timeout=timeout)
        ts = now_ms // 1000 + timeout
        if ts > 0xFFFFFFFF:
            raise MessageError("expiration does not fit in uint32", expire=ts)
        return cls(timeout=timeout, timestamp=ts)


# ──────────────────────────────────────────────────────────────────────────────
# Messages
# ──────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Message:
    dst: Address
    body: Cell
    state_init: Optional[Cell] = None

    def to_cell(self) -> Cell:
        b = CellBuilder()
        b.store_uint(0b10, 2)
        store_address(b, None)
        store_address(b, self.dst)
        b.store_uint(0, 4)
        if self.state_init is None:
            b.store_bit(0)
        else:
            b.store_bit(1)
            b.store_bit(1)
            b.store_ref(self.state_init)
        b.store_bit(1)
        b.store_ref(self.body)
        return b.end_cell()

    @property
    def hash(self) -> bytes:
        return self.to_cell().hash

    def to_boc(self) -> str:
        return boc_to_base64(self.to_cell())


@dataclass(frozen=True)
class SignedMessage:
    message: Message
    expire_at: int

    def to_json(self) -> Dict[str, Any]:
        return {
            "hash": self.message.hash.hex(),
            "boc": self.message.to_boc(),
            "expireAt": self.expire_at,
        }


def _unsigned_body(payload: Cell) -> Cell:
    return CellBuilder().store_bit(0).store_cell_contents(payload).end_cell()


def _signed_body(payload: Cell, signature: bytes) -> Cell:
    b = CellBuilder().store_bit(1).store_bytes(signature)
    return b.store_cell_contents(payload).end_cell()


@dataclass(frozen=True)
class UnsignedMessage:
    """
    Deferred-signature message.

    `hash` is what the external signer must sign (Ed25519 over the payload
    representation hash). `body` is the body as it would be sent unsigned.
    """

    dst: Address
    function: Function
    tokens: Sequence[Token]
    public_key: bytes
    expire_at: ExpireAt
    time_ms: int
    payload: Cell
    state_init: Optional[Cell] = None

    @property
    def hash(self) -> bytes:
        return self.payload.hash

    @property
    def body(self) -> Cell:
        return _unsigned_body(self.payload)

    def complete(self, signature: bytes, *, verify: bool = True) -> SignedMessage:
        """Attach an externally produced signature and build the final message."""
        if not isinstance(signature, (bytes, bytearray)) or len(signature) != SIGNATURE_BYTES:
            raise MessageError("signature must be 64 bytes")
        if verify:
            try:
                Ed25519PublicKey.from_public_bytes(self.public_key).verify(
                    bytes(signature), self.hash
                )
            except InvalidSignature:
                raise MessageError("signature does not match the message hash") from None
        body = _signed_body(self.payload, bytes(signature))
        msg = Message(dst=self.dst, body=body, state_init=self.state_init)
        return SignedMessage(message=msg, expire_at=self.expire_at.timestamp)

    def refresh(self, clock: Optional[Clock] = None) -> "UnsignedMessage":
        """Rebuild header and payload against a fresh clock reading."""
        now = (clock or CLOCK).now_ms()
        expire = ExpireAt.from_timeout(self.expire_at.timeout, now)
        payload = self.function.encode_external_payload(
            {"time": now, "expire": expire.timestamp, "pubkey": self.public_key}, self.tokens
        )
        return replace(self, expire_at=expire, time_ms=now, payload=payload)


# ──────────────────────────────────────────────────────────────────────────────
# Builders
# ──────────────────────────────────────────────────────────────────────────────


def check_public_key(public_key: str | bytes) -> bytes:
    """Validate an Ed25519 public key given as 64 hex digits; returns its bytes."""
    if isinstance(public_key, str):
        try:
            raw = bytes.fromhex(public_key.strip())
        except ValueError:
            raise MessageError("public key is not valid hex") from None
    else:
        raw = bytes(public_key)
    try:
        Ed25519PublicKey.from_public_bytes(raw)
    except ValueError as e:
        raise MessageError(f"invalid public key: {e}") from None
    return raw


def _dst(dst: Any) -> Address:
    try:
        return parse_address(dst)
    except ValueError as e:
        raise MessageError(str(e)) from None


def _state_init(state_init: Optional[str | Cell]) -> Optional[Cell]:
    if state_init is None or isinstance(state_init, Cell):
        return state_init
    try:
        return boc_from_base64(state_init)
    except DecodeError as e:
        raise MessageError(f"invalid state init: {e.message}") from e


def _timeout(timeout: Optional[int]) -> int:
    return load_config().default_timeout if timeout is None else int(timeout)


def encode_internal_input(contract: Contract, method: str, input: Any) -> str:
    """Internal call body (function id + inputs) as a base64 BOC."""
    fn = contract.require_function(method)
    body = fn.encode_internal_input(fn.encode_inputs(input))
    return boc_to_base64(body)


def create_external_message_without_signature(
    dst: Any,
    contract: Contract,
    method: str,
    state_init: Optional[str | Cell],
    input: Any,
    timeout: Optional[int] = None,
    clock: Optional[Clock] = None,
) -> SignedMessage:
    address = _dst(dst)
    fn = contract.require_function(method)
    init = _state_init(state_init)
    tokens = fn.encode_inputs(input)

    now = (clock or CLOCK).now_ms()
    expire = ExpireAt.from_timeout(_timeout(timeout), now)
    payload = fn.encode_external_payload(
        {"time": now, "expire": expire.timestamp, "pubkey": None}, tokens
    )
    msg = Message(dst=address, body=_unsigned_body(payload), state_init=init)
    log.debug("unsigned external message built", extra={"method": method, "expire": expire.timestamp})
    return SignedMessage(message=msg, expire_at=expire.timestamp)


def create_external_message(
    dst: Any,
    contract: Contract,
    method: str,
    state_init: Optional[str | Cell],
    input: Any,
    public_key: str | bytes,
    timeout: Optional[int] = None,
    clock: Optional[Clock] = None,
) -> UnsignedMessage:
    address = _dst(dst)
    fn = contract.require_function(method)
    init = _state_init(state_init)
    tokens = fn.encode_inputs(input)
    pubkey = check_public_key(public_key)

    now = (clock or CLOCK).now_ms()
    expire = ExpireAt.from_timeout(_timeout(timeout), now)
    payload = fn.encode_external_payload(
        {"time": now, "expire": expire.timestamp, "pubkey": pubkey}, tokens
    )
    log.debug("deferred-signature message built", extra={"method": method, "expire": expire.timestamp})
    return UnsignedMessage(
        dst=address,
        function=fn,
        tokens=tuple(tokens),
        public_key=pubkey,
        expire_at=expire,
        time_ms=now,
        payload=payload,
        state_init=init,
    )
