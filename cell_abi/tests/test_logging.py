from __future__ import annotations

import io
import json
import logging

import pytest

from cell_abi import api
from cell_abi import logging as alog


@pytest.fixture
def stream():
    buf = io.StringIO()
    yield buf
    logger = logging.getLogger("cell_abi")
    for h in list(logger.handlers):
        logger.removeHandler(h)
    logger.propagate = True


def test_json_lines_carry_context_and_extras(stream) -> None:
    alog.configure(json=True, level="DEBUG", stream=stream)
    log = alog.get_logger("cell_abi.test")
    with alog.trace_scope("t-1"):
        alog.bind(method="burn")
        log.debug("matched", extra={"id": 7})
    rec = json.loads(stream.getvalue().strip())
    assert rec["msg"] == "matched"
    assert rec["trace_id"] == "t-1"
    assert rec["method"] == "burn"
    assert rec["id"] == 7
    assert alog.context() == {}


def test_text_format_and_levels(stream, monkeypatch) -> None:
    monkeypatch.setenv("CELL_ABI_LOG_LEVEL", "info")
    alog.configure(stream=stream)
    log = alog.get_logger("cell_abi.test")
    log.debug("hidden")
    log.info("shown", extra={"cells": 3})
    out = stream.getvalue()
    assert "hidden" not in out
    assert "| INFO  | cell_abi.test | cells=3 | shown" in out


def test_with_fields_merges_call_site_extras(stream) -> None:
    alog.configure(json=True, level="DEBUG", stream=stream)
    log = alog.with_fields(alog.get_logger("cell_abi.test"), method="transfer", raw=b"\x01")
    log.debug("hello", extra={"step": 2})
    rec = json.loads(stream.getvalue().strip())
    assert (rec["method"], rec["raw"], rec["step"]) == ("transfer", "01", 2)


def test_bind_unbind() -> None:
    with alog.trace_scope():
        alog.bind(op="x", contract="c")
        alog.unbind("contract")
        ctx = alog.context()
        assert ctx["op"] == "x" and "contract" not in ctx
        assert len(ctx["trace_id"]) == 12


def test_facade_failures_are_logged_with_operation(stream) -> None:
    alog.configure(json=True, level="DEBUG", stream=stream)
    api.get_boc_hash("***")
    lines = [json.loads(line) for line in stream.getvalue().splitlines()]
    failed = [r for r in lines if r["msg"] == "operation failed"]
    assert failed and failed[0]["op"] == "get_boc_hash"
    assert failed[0]["code"] == "ABI/DECODE"
