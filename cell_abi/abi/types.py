"""
ABI parameter types and the textual type grammar.

The type system is a closed set of frozen dataclasses:

  - bool, int<N>, uint<N>        (1 ≤ N ≤ 256; varint<N>/varuint<N> map here too)
  - token / gram                 (coin amount, 4-bit length + up to 15 bytes)
  - time, expire, pubkey         (message header types)
  - address, cell, bytes, string, fixedbytes<N>
  - T[], T[N]                    (dynamic / fixed arrays)
  - map(K,V)                     (K ∈ int/uint/address)
  - tuple                        (fields supplied by a `components` list)
  - optional(T), ref(T)

Every type knows its canonical `signature` (used to derive function and
event ids) and its static `max_size` (bits, refs): the most room a single
value can take in a cell. The cell layout relies on `max_size` to decide when
a value spills into the next cell of a chain.

Grammar
-------
    type    := base suffix*
    suffix  := "[" "]" | "[" NUMBER "]"
    base    := IDENT | IDENT "(" type ("," type)* ")"

Descriptors are lexed into tokens first and parsed by recursive descent, so
nested groups such as ``map(uint8,uint8[][3])`` never depend on character
offsets.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, replace
from typing import Any, Iterable, List, Mapping, Sequence, Tuple, Union

from ..errors import GrammarError

__all__ = [
    "BoolType",
    "IntType",
    "UintType",
    "TokenType",
    "TimeType",
    "ExpireType",
    "PublicKeyType",
    "AddressType",
    "CellType",
    "BytesType",
    "FixedBytesType",
    "StringType",
    "ArrayType",
    "FixedArrayType",
    "MapType",
    "TupleType",
    "OptionalType",
    "RefType",
    "ParamType",
    "Param",
    "parse_type",
    "attach_components",
    "parse_param",
    "parse_params_list",
]


# ──────────────────────────────────────────────────────────────────────────────
# Scalar types
# ──────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class BoolType:
    signature = "bool"
    max_size = (1, 0)


@dataclass(frozen=True)
class IntType:
    bits: int

    @property
    def signature(self) -> str:
        return f"int{self.bits}"

    @property
    def max_size(self) -> Tuple[int, int]:
        return (self.bits, 0)


@dataclass(frozen=True)
class UintType:
    bits: int

    @property
    def signature(self) -> str:
        return f"uint{self.bits}"

    @property
    def max_size(self) -> Tuple[int, int]:
        return (self.bits, 0)


@dataclass(frozen=True)
class TokenType:
    signature = "gram"
    max_size = (4 + 15 * 8, 0)


@dataclass(frozen=True)
class TimeType:
    signature = "time"
    max_size = (64, 0)


@dataclass(frozen=True)
class ExpireType:
    signature = "expire"
    max_size = (32, 0)


@dataclass(frozen=True)
class PublicKeyType:
    signature = "pubkey"
    max_size = (1 + 256, 0)


@dataclass(frozen=True)
class AddressType:
    signature = "address"
    max_size = (267, 0)


@dataclass(frozen=True)
class CellType:
    signature = "cell"
    max_size = (0, 1)


@dataclass(frozen=True)
class BytesType:
    signature = "bytes"
    max_size = (0, 1)


@dataclass(frozen=True)
class FixedBytesType:
    size: int

    @property
    def signature(self) -> str:
        return f"fixedbytes{self.size}"

    max_size = (0, 1)


@dataclass(frozen=True)
class StringType:
    signature = "string"
    max_size = (0, 1)


# ──────────────────────────────────────────────────────────────────────────────
# Composite types
# ──────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ArrayType:
    item: "ParamType"

    @property
    def signature(self) -> str:
        return f"{self.item.signature}[]"

    max_size = (32, 1)


@dataclass(frozen=True)
class FixedArrayType:
    item: "ParamType"
    size: int

    def __post_init__(self) -> None:
        if self.size <= 0:
            raise GrammarError("ExpectedParamType", "fixed array length must be positive")

    @property
    def signature(self) -> str:
        return f"{self.item.signature}[{self.size}]"

    max_size = (0, 1)


@dataclass(frozen=True)
class MapType:
    key: "ParamType"
    value: "ParamType"

    def __post_init__(self) -> None:
        if not isinstance(self.key, (IntType, UintType, AddressType)):
            raise GrammarError("InvalidMapKey", key=self.key.signature)

    @property
    def signature(self) -> str:
        return f"map({self.key.signature},{self.value.signature})"

    max_size = (1, 1)


@dataclass(frozen=True)
class TupleType:
    fields: Tuple["Param", ...] = ()

    @property
    def signature(self) -> str:
        return "(" + ",".join(f.kind.signature for f in self.fields) + ")"


@dataclass(frozen=True)
class OptionalType:
    inner: "ParamType"

    @property
    def signature(self) -> str:
        return f"optional({self.inner.signature})"

    max_size = (1, 1)


@dataclass(frozen=True)
class RefType:
    inner: "ParamType"

    @property
    def signature(self) -> str:
        return f"ref({self.inner.signature})"

    max_size = (0, 1)


ParamType = Union[
    BoolType,
    IntType,
    UintType,
    TokenType,
    TimeType,
    ExpireType,
    PublicKeyType,
    AddressType,
    CellType,
    BytesType,
    FixedBytesType,
    StringType,
    ArrayType,
    FixedArrayType,
    MapType,
    TupleType,
    OptionalType,
    RefType,
]


@dataclass(frozen=True)
class Param:
    name: str
    kind: ParamType


# ──────────────────────────────────────────────────────────────────────────────
# Lexer
# ──────────────────────────────────────────────────────────────────────────────

_TOKEN_RE = re.compile(r"\s*(?:([A-Za-z_][A-Za-z0-9_]*)|(\d+)|([()\[\],]))")

_Tok = Tuple[str, str]  # (kind, text) with kind ∈ {"ident", "num", "punct", "end"}


def _lex(text: str) -> List[_Tok]:
    toks: List[_Tok] = []
    pos = 0
    stack: List[str] = []
    pairs = {")": "(", "]": "["}
    while pos < len(text):
        if text[pos:].strip() == "":
            break
        m = _TOKEN_RE.match(text, pos)
        if not m:
            raise GrammarError("ExpectedParamType", descriptor=text, offset=pos)
        ident, num, punct = m.groups()
        if ident is not None:
            toks.append(("ident", ident))
        elif num is not None:
            toks.append(("num", num))
        else:
            if punct in "([":
                stack.append(punct)
            elif punct in ")]":
                if not stack or stack.pop() != pairs[punct]:
                    raise GrammarError("UnbalancedNesting", descriptor=text)
            toks.append(("punct", punct))
        pos = m.end()
    if stack:
        raise GrammarError("UnbalancedNesting", descriptor=text)
    toks.append(("end", ""))
    return toks


# ──────────────────────────────────────────────────────────────────────────────
# Recursive-descent parser
# ──────────────────────────────────────────────────────────────────────────────

_SIMPLE = {
    "bool": BoolType(),
    "cell": CellType(),
    "address": AddressType(),
    "token": TokenType(),
    "gram": TokenType(),
    "bytes": BytesType(),
    "time": TimeType(),
    "expire": ExpireType(),
    "pubkey": PublicKeyType(),
    "string": StringType(),
    "tuple": TupleType(),
}

# Longest prefixes first so "uint8" is never read as "int" + "8".
_WIDTH_RE = re.compile(r"^(varuint|varint|uint|int|fixedbytes)(.*)$")


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.toks = _lex(text)
        self.i = 0

    def _peek(self) -> _Tok:
        return self.toks[self.i]

    def _next(self) -> _Tok:
        tok = self.toks[self.i]
        self.i += 1
        return tok

    def _expect(self, text: str) -> None:
        kind, got = self._next()
        if kind != "punct" or got != text:
            self._fail()

    def _fail(self) -> None:
        raise GrammarError("ExpectedParamType", descriptor=self.text)

    def parse(self) -> ParamType:
        kind = self._type()
        if self._peek()[0] != "end":
            self._fail()
        return kind

    def _type(self) -> ParamType:
        kind = self._base()
        while self._peek() == ("punct", "["):
            self._next()
            tk, text = self._next()
            if tk == "punct" and text == "]":
                kind = ArrayType(kind)
                continue
            if tk != "num":
                self._fail()
            self._expect("]")
            size = int(text)
            if size <= 0:
                self._fail()
            kind = FixedArrayType(kind, size)
        return kind

    def _args(self, n: int) -> List[ParamType]:
        self._expect("(")
        out = [self._type()]
        while len(out) < n:
            self._expect(",")
            out.append(self._type())
        self._expect(")")
        return out

    def _base(self) -> ParamType:
        tk, word = self._next()
        if tk != "ident":
            self._fail()
        if word in _SIMPLE:
            return _SIMPLE[word]
        if word == "map":
            key, value = self._args(2)
            return MapType(key, value)
        if word == "optional":
            return OptionalType(self._args(1)[0])
        if word == "ref":
            return RefType(self._args(1)[0])
        m = _WIDTH_RE.match(word)
        if not m or not m.group(2).isdigit():
            self._fail()
        prefix, width = m.group(1), int(m.group(2))
        if prefix == "fixedbytes":
            if width < 1:
                self._fail()
            return FixedBytesType(width)
        if not 1 <= width <= 256:
            self._fail()
        # varint/varuint share the fixed-width representation (see DESIGN.md).
        if prefix in ("int", "varint"):
            return IntType(width)
        return UintType(width)


def parse_type(text: str) -> ParamType:
    """
    Parse a textual type descriptor into a ParamType.

    >>> parse_type("uint8[][3]")
    FixedArrayType(item=ArrayType(item=UintType(bits=8)), size=3)
    """
    if not isinstance(text, str) or not text.strip():
        raise GrammarError("ExpectedParamType", descriptor=text)
    return _Parser(text).parse()


# ──────────────────────────────────────────────────────────────────────────────
# Components (tuple fields) and JSON params
# ──────────────────────────────────────────────────────────────────────────────


def attach_components(kind: ParamType, components: Sequence[Param]) -> ParamType:
    """
    Fill the tuple inside `kind` with `components`.

    Components reach the innermost tuple through arrays, optionals, refs and
    map values. Supplying components to a type that contains no tuple, or
    reaching a tuple with none, is an InvalidComponents error.
    """
    if isinstance(kind, TupleType):
        if not components:
            raise GrammarError("InvalidComponents", "tuple requires components")
        return TupleType(tuple(components))
    if isinstance(kind, ArrayType):
        return ArrayType(attach_components(kind.item, components))
    if isinstance(kind, FixedArrayType):
        return replace(kind, item=attach_components(kind.item, components))
    if isinstance(kind, (OptionalType, RefType)):
        return replace(kind, inner=attach_components(kind.inner, components))
    if isinstance(kind, MapType):
        return replace(kind, value=attach_components(kind.value, components))
    if components:
        raise GrammarError("InvalidComponents", type=kind.signature)
    return kind


def parse_param(obj: Mapping[str, Any]) -> Param:
    """Build a Param from a JSON object ``{"name", "type", "components"?}``."""
    if not isinstance(obj, Mapping):
        raise GrammarError("ExpectedParamType", "param must be an object")
    name = obj.get("name")
    type_str = obj.get("type")
    if not isinstance(name, str):
        raise GrammarError("ExpectedParamType", "param.name must be a string")
    if not isinstance(type_str, str):
        raise GrammarError("ExpectedParamType", "param.type must be a string", param=name)
    kind = parse_type(type_str)
    raw_components = obj.get("components")
    if raw_components is None:
        components: List[Param] = []
    elif isinstance(raw_components, list):
        components = [parse_param(c) for c in raw_components]
    else:
        raise GrammarError("InvalidComponents", param=name)
    return Param(name=name, kind=attach_components(kind, components))


def parse_params_list(params: Union[str, Iterable[Mapping[str, Any]]]) -> Tuple[Param, ...]:
    """Parse a JSON array of params (text or already-decoded list)."""
    if isinstance(params, str):
        try:
            params = json.loads(params)
        except json.JSONDecodeError as e:
            raise GrammarError("ExpectedParamType", f"params are not valid JSON: {e}") from e
    if not isinstance(params, list):
        raise GrammarError("ExpectedParamType", "params must be a JSON array")
    return tuple(parse_param(p) for p in params)
