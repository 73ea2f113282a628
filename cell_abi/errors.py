"""
cell_abi.errors
---------------

A small, consistent error system for the ABI toolkit.

Design goals
------------
- One root `AbiKitError` with a machine-friendly `code` and optional `data`.
- One subclass per failure family: grammar, schema (encode), decode,
  malformed transaction, contract descriptor, message construction.
- Safe JSON representation (`to_dict`) suitable for logs and the facade's
  `{"type": "err"}` envelope.

A failed function/event match is *not* an error; see `cell_abi.matcher.MISS`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

__all__ = [
    "ErrorCode",
    "AbiKitError",
    "GrammarError",
    "SchemaError",
    "DecodeError",
    "MalformedTransaction",
    "ContractError",
    "MessageError",
    "ensure_abi_error",
]


class ErrorCode(str, Enum):
    INTERNAL = "ABI/INTERNAL"
    GRAMMAR = "ABI/GRAMMAR"
    SCHEMA = "ABI/SCHEMA"
    DECODE = "ABI/DECODE"
    MALFORMED_TX = "ABI/MALFORMED_TRANSACTION"
    CONTRACT = "ABI/CONTRACT"
    MESSAGE = "ABI/MESSAGE"


@dataclass(eq=False)
class AbiKitError(Exception):
    """
    Root error for the toolkit.

    Attributes
    ----------
    code: str
        Machine-stable error code (see ErrorCode).
    message: str
        Human hint suitable for logs.
    data: dict
        Optional machine data (field path, descriptor, sizes). JSON-serializable.
    cause: Optional[BaseException]
        Wrapped original exception; not included in equality comparison.
    """

    code: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    cause: Optional[BaseException] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        super().__init__(f"{self.code}: {self.message}")

    def to_dict(self, include_cause: bool = False) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "code": str(getattr(self.code, "value", self.code)),
            "message": self.message,
            "data": _jsonmap(self.data),
        }
        if include_cause and self.cause is not None:
            out["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause),
            }
        return out

    def __str__(self) -> str:  # pragma: no cover - human formatting
        if not self.data:
            return self.message
        preview = ", ".join(f"{k}={_preview(v)}" for k, v in self.data.items())
        return f"{self.message} [{preview}]"


class GrammarError(AbiKitError):
    """
    Malformed type descriptor or method-name selector.

    `kind` is one of ExpectedParamType, InvalidComponents, UnbalancedNesting,
    InvalidMapKey, ExpectedStringOrArray.
    """

    def __init__(self, kind: str, message: str = "", **data: Any) -> None:
        super().__init__(
            code=ErrorCode.GRAMMAR,
            message=message or _GRAMMAR_MESSAGES.get(kind, kind),
            data=_jsonmap({"kind": kind, **data}),
        )

    @property
    def kind(self) -> str:
        return str(self.data.get("kind", ""))


_GRAMMAR_MESSAGES = {
    "ExpectedParamType": "Expected param type",
    "InvalidComponents": "Invalid components",
    "UnbalancedNesting": "Unbalanced brackets in type",
    "InvalidMapKey": "Map key must be int, uint or address",
    "ExpectedStringOrArray": "Expected string or array",
}


class SchemaError(AbiKitError):
    """A value does not satisfy its parameter schema during encoding."""

    def __init__(self, message: str, *, field: str = "", **data: Any) -> None:
        super().__init__(
            code=ErrorCode.SCHEMA,
            message=f"{field}: {message}" if field else message,
            data=_jsonmap({"field": field, **data}),
        )

    @property
    def field(self) -> str:
        return str(self.data.get("field", ""))


class DecodeError(AbiKitError):
    """Payload insufficient, malformed, or not fully consumed."""

    def __init__(self, message: str = "decode failed", **data: Any) -> None:
        super().__init__(code=ErrorCode.DECODE, message=message, data=_jsonmap(data))


class MalformedTransaction(AbiKitError):
    def __init__(self, message: str = "Expected message body", **data: Any) -> None:
        super().__init__(
            code=ErrorCode.MALFORMED_TX, message=message, data=_jsonmap(data)
        )


class ContractError(AbiKitError):
    """Invalid contract ABI descriptor or lookup of an undeclared item."""

    def __init__(self, message: str = "invalid contract abi", **data: Any) -> None:
        super().__init__(code=ErrorCode.CONTRACT, message=message, data=_jsonmap(data))


class MessageError(AbiKitError):
    """Invalid message-construction input (address, key, signature, state init)."""

    def __init__(self, message: str = "invalid message input", **data: Any) -> None:
        super().__init__(code=ErrorCode.MESSAGE, message=message, data=_jsonmap(data))


def ensure_abi_error(exc: BaseException) -> AbiKitError:
    """Coerce unknown exceptions to an INTERNAL AbiKitError with cause attached."""
    if isinstance(exc, AbiKitError):
        return exc
    return AbiKitError(code=ErrorCode.INTERNAL, message=str(exc) or type(exc).__name__, cause=exc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _jsonmap(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: _coerce_json(v) for k, v in data.items()}


def _coerce_json(v: Any) -> Any:
    if v is None or isinstance(v, (bool, int, float, str, list, dict)):
        return v
    if isinstance(v, (bytes, bytearray)):
        return v.hex()
    return str(v)


def _preview(v: Any, limit: int = 96) -> str:
    s = str(_coerce_json(v))
    return s if len(s) <= limit else s[:limit] + "…"
