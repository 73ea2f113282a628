"""
cell_abi.logging
----------------

Structured logging for the toolkit.

Library modules only emit records, almost all at DEBUG, through
``get_logger(__name__)``; structured fields ride in ``extra``. Nothing is
installed on import. ``configure()`` puts one console handler on the
``cell_abi`` logger and is called by the CLI (or by an embedding
application that wants this format).

Two sources of fields end up on a line:

- the per-call ``extra`` mapping (or constant fields from ``with_fields``)
- the ambient context, a contextvars mapping filled by ``bind`` inside a
  ``trace_scope``. The facade opens one scope per operation, so every
  record emitted while serving it carries the same ``trace_id`` and ``op``.

    from cell_abi import logging as alog

    alog.configure(level="DEBUG", json=True)
    with alog.trace_scope():
        alog.bind(op="decode_input")
        alog.get_logger(__name__).debug("matched", extra={"method": "burn"})
"""

from __future__ import annotations

import io
import json as _json
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, Mapping, MutableMapping, Optional, Tuple

from .config import load_config

__all__ = [
    "DEFAULT_CONTEXT_KEYS",
    "context",
    "bind",
    "unbind",
    "trace_scope",
    "JSONFormatter",
    "TextFormatter",
    "configure",
    "get_logger",
    "with_fields",
    "ContextAdapter",
]

ROOT_LOGGER = "cell_abi"

# Context keys shown first (in this order) by the text formatter.
DEFAULT_CONTEXT_KEYS = ("trace_id", "component", "op", "method")

_CTX: ContextVar[Mapping[str, Any]] = ContextVar("cell_abi_log_ctx", default={})

# Attributes every LogRecord has; anything else on a record came from `extra`.
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "taskName",
}


def _plain(v: Any) -> Any:
    """Reduce a field value to something json.dumps and str() render sensibly."""
    if v is None or isinstance(v, (bool, int, float, str)):
        return v
    if isinstance(v, (bytes, bytearray, memoryview)):
        return bytes(v).hex()
    if isinstance(v, (list, tuple)):
        return [_plain(x) for x in v]
    if isinstance(v, dict):
        return {str(k): _plain(x) for k, x in v.items()}
    return str(v)


# ──────────────────────────────────────────────────────────────────────────────
# Ambient context
# ──────────────────────────────────────────────────────────────────────────────


def context() -> Dict[str, Any]:
    """Snapshot of the fields bound in the current context."""
    return dict(_CTX.get())


def bind(**fields: Any) -> None:
    _CTX.set({**_CTX.get(), **{k: _plain(v) for k, v in fields.items()}})


def unbind(*keys: str) -> None:
    _CTX.set({k: v for k, v in _CTX.get().items() if k not in keys})


@contextmanager
def trace_scope(trace_id: Optional[str] = None) -> Iterator[str]:
    """
    Bind a trace id for the duration of the block and yield it.

    Whatever is bound inside the block is dropped on exit.
    """
    token = _CTX.set(dict(_CTX.get()))
    tid = trace_id or uuid.uuid4().hex[:12]
    bind(trace_id=tid)
    try:
        yield tid
    finally:
        _CTX.reset(token)


# ──────────────────────────────────────────────────────────────────────────────
# Formatters
# ──────────────────────────────────────────────────────────────────────────────


def _fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Context first, then call-site extras (which never override context)."""
    out = context()
    for k, v in record.__dict__.items():
        if k in _STANDARD_ATTRS or k.startswith("_") or k in out:
            continue
        out[k] = _plain(v)
    return out


def _timestamp(record: logging.LogRecord) -> str:
    base = time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created))
    return f"{base}.{int(record.msecs):03d}Z"


class JSONFormatter(logging.Formatter):
    """One JSON object per line: ts, level, logger, msg, then fields."""

    def format(self, record: logging.LogRecord) -> str:
        doc: Dict[str, Any] = {
            "ts": _timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for k, v in _fields(record).items():
            doc.setdefault(k, v)
        if record.exc_info:
            doc["exc"] = self.formatException(record.exc_info)
        return _json.dumps(doc, default=str, separators=(",", ":"))


class TextFormatter(logging.Formatter):
    """
    ``<ts> | LEVEL | logger | k=v ... | message``

    Well-known context keys come first in DEFAULT_CONTEXT_KEYS order.
    """

    def format(self, record: logging.LogRecord) -> str:
        fields = _fields(record)
        ordered = [k for k in DEFAULT_CONTEXT_KEYS if fields.get(k) is not None]
        ordered += [k for k in fields if k not in DEFAULT_CONTEXT_KEYS]
        parts = [_timestamp(record), f"{record.levelname:<5}", record.name]
        if ordered:
            parts.append(" ".join(f"{k}={fields[k]}" for k in ordered))
        parts.append(record.getMessage())
        line = " | ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


# ──────────────────────────────────────────────────────────────────────────────
# Setup
# ──────────────────────────────────────────────────────────────────────────────


def _level(value: str | int) -> int:
    if isinstance(value, int):
        return value
    resolved = logging.getLevelName(value.strip().upper())
    return resolved if isinstance(resolved, int) else logging.WARNING


def configure(
    *,
    json: Optional[bool] = None,
    level: str | int | None = None,
    stream: io.TextIOBase = sys.stderr,
) -> None:
    """
    Replace the handlers of the ``cell_abi`` logger with one stream handler.

    ``json`` and ``level`` fall back to CELL_ABI_LOG_JSON / CELL_ABI_LOG_LEVEL.
    """
    cfg = load_config()
    lvl = _level(cfg.log_level if level is None else level)
    use_json = cfg.log_json if json is None else json

    handler = logging.StreamHandler(stream)
    handler.setFormatter(JSONFormatter() if use_json else TextFormatter())
    handler.setLevel(lvl)

    root = logging.getLogger(ROOT_LOGGER)
    for old in list(root.handlers):
        root.removeHandler(old)
    root.addHandler(handler)
    root.setLevel(lvl)
    root.propagate = False


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or ROOT_LOGGER)


class ContextAdapter(logging.LoggerAdapter):
    """Adds constant fields to every record; call-site ``extra`` wins on clashes."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs


def with_fields(logger: logging.Logger, **fields: Any) -> ContextAdapter:
    return ContextAdapter(logger, {k: _plain(v) for k, v in fields.items()})
