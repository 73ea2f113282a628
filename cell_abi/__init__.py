"""
cell_abi
========

ABI toolkit for tree-of-cells smart contracts.

  • cell_abi.cells        : cells, builders/slices, bag-of-cells codec
  • cell_abi.abi          : type grammar, tokens, canonical packing, contract model
  • cell_abi.messages     : call bodies, external messages, deferred signatures
  • cell_abi.matcher      : function/event matching and decoding
  • cell_abi.transaction  : transaction decoding and event extraction
  • cell_abi.api          : JSON facade returning {"type": "ok"|"err", "data"} envelopes

Everything is a pure transformation: nothing here fetches state, signs or
broadcasts.
"""

from __future__ import annotations

from .version import __version__
from .errors import (
    AbiKitError,
    ContractError,
    DecodeError,
    GrammarError,
    MalformedTransaction,
    MessageError,
    SchemaError,
)
from .address import Address, parse_address
from .cells import Cell, CellBuilder, CellSlice, boc_from_base64, boc_hash, boc_to_base64
from .abi import (
    Contract,
    ContractCache,
    Event,
    Function,
    Param,
    Token,
    encode_tokens,
    pack_into_cell,
    parse_type,
    tokens_to_json,
    unpack_from_cell,
)
from .matcher import MISS, GuessInRange, KnownName, Match, parse_method_name
from .messages import (
    CLOCK,
    ConstantClock,
    ExpireAt,
    SignedMessage,
    UnsignedMessage,
    create_external_message,
    create_external_message_without_signature,
    encode_internal_input,
)
from .transaction import Transaction, decode_transaction, decode_transaction_events

__all__ = [
    "__version__",
    "AbiKitError",
    "ContractError",
    "DecodeError",
    "GrammarError",
    "MalformedTransaction",
    "MessageError",
    "SchemaError",
    "Address",
    "parse_address",
    "Cell",
    "CellBuilder",
    "CellSlice",
    "boc_from_base64",
    "boc_hash",
    "boc_to_base64",
    "Contract",
    "ContractCache",
    "Event",
    "Function",
    "Param",
    "Token",
    "encode_tokens",
    "pack_into_cell",
    "parse_type",
    "tokens_to_json",
    "unpack_from_cell",
    "MISS",
    "GuessInRange",
    "KnownName",
    "Match",
    "parse_method_name",
    "CLOCK",
    "ConstantClock",
    "ExpireAt",
    "SignedMessage",
    "UnsignedMessage",
    "create_external_message",
    "create_external_message_without_signature",
    "encode_internal_input",
    "Transaction",
    "decode_transaction",
    "decode_transaction_events",
]
