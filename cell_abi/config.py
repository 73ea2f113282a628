"""
cell_abi.config: defaults, resource caps and logging knobs.

This module centralizes configuration for the toolkit. It has NO third-party
deps and is safe to import very early.

Configuration precedence:
  1) Environment variables (CELL_ABI_*)
  2) Hardcoded safe defaults below

Key env vars (case-insensitive where boolean):
  - CELL_ABI_DEFAULT_TIMEOUT   (int)    default: 60       (seconds, external messages)
  - CELL_ABI_MAX_BOC_BYTES     (int)    default: 1_048_576
  - CELL_ABI_MAX_CELLS         (int)    default: 65_536
  - CELL_ABI_STRICT_ADDRESS    (bool)   default: true     (reject addr_none in address tokens)
  - CELL_ABI_LOG_LEVEL         (str)    default: WARNING
  - CELL_ABI_LOG_JSON          (bool)   default: false

Usage:
    from cell_abi.config import load_config
    CFG = load_config()
    if len(raw) > CFG.max_boc_bytes: ...
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import os


# ----------------------------- helpers ---------------------------------------


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    val = raw.strip().lower()
    return val in ("1", "true", "t", "yes", "y", "on")


def _env_int(name: str, default: int, *, min_v: int, max_v: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        v = int(raw, 0)
    except ValueError:
        return default
    if v < min_v:
        return min_v
    if v > max_v:
        return max_v
    return v


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    return raw.strip() if raw and raw.strip() else default


# ------------------------------- config --------------------------------------


@dataclass(frozen=True)
class AbiConfig:
    default_timeout: int
    max_boc_bytes: int
    max_cells: int
    strict_address: bool
    log_level: str
    log_json: bool


@lru_cache(maxsize=1)
def load_config() -> AbiConfig:
    """
    Build and cache an AbiConfig from environment + safe defaults.
    """
    return AbiConfig(
        default_timeout=_env_int("CELL_ABI_DEFAULT_TIMEOUT", 60, min_v=1, max_v=86_400),
        max_boc_bytes=_env_int("CELL_ABI_MAX_BOC_BYTES", 1_048_576, min_v=1_024, max_v=67_108_864),
        max_cells=_env_int("CELL_ABI_MAX_CELLS", 65_536, min_v=16, max_v=4_194_304),
        strict_address=_env_bool("CELL_ABI_STRICT_ADDRESS", True),
        log_level=_env_str("CELL_ABI_LOG_LEVEL", "WARNING").upper(),
        log_json=_env_bool("CELL_ABI_LOG_JSON", False),
    )


__all__ = ["AbiConfig", "load_config"]
