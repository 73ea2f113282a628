"""
Local (non-broadcast) contract calls.

The call body is prepared here; execution against an account-state snapshot
belongs to a VM collaborator supplied by the caller as a `LocalExecutor`.
Its result is relayed unchanged apart from JSON rendering.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from .abi.contract import Contract, Function
from .abi.tokens import Token, tokens_to_json
from .cells import Cell
from .errors import MessageError
from .logging import get_logger

__all__ = ["ExecutionOutput", "LocalExecutor", "run_local"]

log = get_logger(__name__)


@dataclass(frozen=True)
class ExecutionOutput:
    output: Optional[List[Token]]
    code: int

    def to_json(self) -> Dict[str, Any]:
        return {
            "output": None if self.output is None else tokens_to_json(self.output),
            "code": self.code,
        }


class LocalExecutor(Protocol):
    def execute(
        self, account_state: str, function: Function, body: Cell, *, responsible: bool
    ) -> ExecutionOutput: ...


def run_local(
    account_state: str,
    contract: Contract,
    method: str,
    input: Any,
    responsible: bool,
    executor: LocalExecutor,
) -> ExecutionOutput:
    fn = contract.require_function(method)
    body = fn.encode_internal_input(fn.encode_inputs(input))
    result = executor.execute(account_state, fn, body, responsible=responsible)
    if not isinstance(result, ExecutionOutput):
        raise MessageError("executor returned an unexpected result", type=type(result).__name__)
    log.debug("local run finished", extra={"method": method, "code": result.code})
    return result
