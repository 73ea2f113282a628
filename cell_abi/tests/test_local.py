from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List

import pytest

from cell_abi.abi.contract import Contract, Function
from cell_abi.abi.tokens import encode_tokens
from cell_abi.cells import Cell
from cell_abi.errors import ContractError, MessageError
from cell_abi.local import ExecutionOutput, run_local


@dataclass
class FakeExecutor:
    """Answers every call with `remaining = amount * 2`."""

    calls: List[Any] = field(default_factory=list)

    def execute(self, account_state: str, function: Function, body: Cell, *, responsible: bool):
        self.calls.append((account_state, function.name, body, responsible))
        amount = function.decode_input(body, internal=True)[0].value
        return ExecutionOutput(encode_tokens(function.outputs, [amount * 2]), 0)


def test_run_local_relays_executor_result(contract: Contract) -> None:
    ex = FakeExecutor()
    out = run_local("state-boc", contract, "burn", {"amount": 21}, False, ex)
    assert out.to_json() == {"output": {"remaining": "42"}, "code": 0}
    state, name, body, responsible = ex.calls[0]
    assert (state, name, responsible) == ("state-boc", "burn", False)
    assert body.begin_parse().load_uint(32) == contract.require_function("burn").input_id


def test_run_local_without_output(contract: Contract) -> None:
    class Silent:
        def execute(self, account_state, function, body, *, responsible):
            return ExecutionOutput(None, 60)

    out = run_local("s", contract, "burn", [1], True, Silent())
    assert out.to_json() == {"output": None, "code": 60}


def test_run_local_rejects_foreign_results(contract: Contract) -> None:
    class Broken:
        def execute(self, account_state, function, body, *, responsible):
            return {"output": None}

    with pytest.raises(MessageError):
        run_local("s", contract, "burn", [1], False, Broken())
    with pytest.raises(ContractError):
        run_local("s", contract, "mint", [1], False, FakeExecutor())
