"""
cell_abi.abi
============

Public ABI surface:
  • Parameter types and the textual type grammar.
  • Tokens (validated values) and their JSON forms.
  • Canonical packing into / unpacking from cell chains.
  • The contract model: functions, events, ids, call bodies.

Everything here is pure-Python and deterministic.
"""

from __future__ import annotations

from ..version import __version__

from .contract import *  # noqa: F401,F403
from .decoding import *  # noqa: F401,F403
from .encoding import *  # noqa: F401,F403
from .tokens import *  # noqa: F401,F403
from .types import *  # noqa: F401,F403

from .contract import __all__ as _all_contract
from .decoding import __all__ as _all_decoding
from .encoding import __all__ as _all_encoding
from .tokens import __all__ as _all_tokens
from .types import __all__ as _all_types

__all__ = tuple(
    dict.fromkeys(  # preserve order, dedupe
        (*_all_types, *_all_tokens, *_all_encoding, *_all_decoding, *_all_contract, "__version__")
    )
)
