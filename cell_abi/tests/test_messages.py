from __future__ import annotations

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from cell_abi.abi.contract import Contract, read_external_header
from cell_abi.address import load_address
from cell_abi.cells import Cell, CellBuilder, boc_from_base64, boc_to_base64
from cell_abi.config import load_config
from cell_abi.errors import ContractError, MessageError
from cell_abi.messages import (
    ConstantClock,
    ExpireAt,
    OffsetClock,
    SimpleClock,
    check_public_key,
    create_external_message,
    create_external_message_without_signature,
    encode_internal_input,
)

from conftest import DEST

NOW_MS = 1_700_000_000_123
CLOCK = ConstantClock(NOW_MS)
ARGS = {"dest": DEST, "value": "1000", "bounce": False}


@pytest.fixture
def keypair():
    priv = Ed25519PrivateKey.generate()
    pub = priv.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
    return priv, pub


def _split_envelope(msg_cell: Cell):
    s = msg_cell.begin_parse()
    assert s.load_uint(2) == 0b10
    assert load_address(s) is None
    dst = load_address(s)
    assert s.load_uint(4) == 0
    init = None
    if s.load_bit():
        assert s.load_bit() == 1
        init = s.load_ref()
    assert s.load_bit() == 1
    body = s.load_ref()
    assert s.is_empty()
    return dst, init, body


# ---------------------------------------------------------------------------
# Expiration & clocks
# ---------------------------------------------------------------------------


def test_expire_from_single_clock_reading() -> None:
    assert ExpireAt.from_timeout(60, NOW_MS).timestamp == 1_700_000_060
    assert ExpireAt.from_timeout(0, 999).timestamp == 0


def test_expire_rejects_negative_and_overflow() -> None:
    with pytest.raises(MessageError):
        ExpireAt.from_timeout(-1, NOW_MS)
    with pytest.raises(MessageError):
        ExpireAt.from_timeout(60, 0xFFFFFFFF * 1000)


def test_offset_clock_shifts_wall_clock(monkeypatch) -> None:
    monkeypatch.setattr("cell_abi.messages.time.time_ns", lambda: NOW_MS * 1_000_000)
    assert SimpleClock().now_ms() == NOW_MS
    assert OffsetClock(-3_000).now_ms() == NOW_MS - 3_000
    assert OffsetClock().now_ms() == NOW_MS
    ahead = OffsetClock(60_000)
    assert ExpireAt.from_timeout(10, ahead.now_ms()).timestamp == NOW_MS // 1000 + 70


# ---------------------------------------------------------------------------
# Unsigned external messages
# ---------------------------------------------------------------------------


def test_unsigned_message_layout(contract: Contract) -> None:
    signed = create_external_message_without_signature(
        DEST, contract, "transfer", None, ARGS, timeout=60, clock=CLOCK
    )
    assert signed.expire_at == 1_700_000_060
    dst, init, body = _split_envelope(signed.message.to_cell())
    assert str(dst) == DEST
    assert init is None
    assert body.begin_parse().load_bit() == 0

    fn = contract.require_function("transfer")
    _, header = read_external_header(contract.header, body)
    assert [t.value for t in header] == [None, NOW_MS, 1_700_000_060]
    decoded = fn.decode_input(body, internal=False)
    assert [t.value for t in decoded][1:] == [1000, False]

    out = signed.to_json()
    assert out["expireAt"] == 1_700_000_060
    assert out["hash"] == signed.message.hash.hex()
    assert boc_from_base64(out["boc"]) == signed.message.to_cell()


def test_default_timeout_comes_from_config(contract: Contract, monkeypatch) -> None:
    monkeypatch.setenv("CELL_ABI_DEFAULT_TIMEOUT", "120")
    load_config.cache_clear()
    signed = create_external_message_without_signature(
        DEST, contract, "transfer", None, ARGS, clock=CLOCK
    )
    assert signed.expire_at == 1_700_000_120


def test_state_init_is_attached_as_ref(contract: Contract) -> None:
    init = CellBuilder().store_uint(0xC0DE, 16).end_cell()
    signed = create_external_message_without_signature(
        DEST, contract, "burn", boc_to_base64(init), {"amount": 1}, timeout=5, clock=CLOCK
    )
    _, got, _ = _split_envelope(signed.message.to_cell())
    assert got == init


@pytest.mark.parametrize(
    "dst,method,state_init,exc",
    [
        ("0:zz", "burn", None, MessageError),
        (DEST, "mint", None, ContractError),
        (DEST, "burn", "!!notbase64", MessageError),
    ],
)
def test_invalid_message_inputs(contract: Contract, dst, method, state_init, exc) -> None:
    with pytest.raises(exc):
        create_external_message_without_signature(
            dst, contract, method, state_init, {"amount": 1}, timeout=5, clock=CLOCK
        )


# ---------------------------------------------------------------------------
# Deferred signature
# ---------------------------------------------------------------------------


def test_deferred_signature_flow(contract: Contract, keypair) -> None:
    priv, pub = keypair
    unsigned = create_external_message(
        DEST, contract, "transfer", None, ARGS, pub.hex(), timeout=60, clock=CLOCK
    )
    assert unsigned.expire_at.timestamp == 1_700_000_060
    assert unsigned.hash == unsigned.payload.hash
    assert unsigned.body.begin_parse().load_bit() == 0

    signature = priv.sign(unsigned.hash)
    signed = unsigned.complete(signature)
    _, _, body = _split_envelope(signed.message.to_cell())
    s = body.begin_parse()
    assert s.load_bit() == 1
    assert s.load_bytes(64) == signature

    _, header = read_external_header(contract.header, body)
    assert header[0].value == pub
    fn = contract.require_function("transfer")
    assert [t.value for t in fn.decode_input(body, internal=False)][1:] == [1000, False]


def test_complete_rejects_bad_signatures(contract: Contract, keypair) -> None:
    _, pub = keypair
    unsigned = create_external_message(
        DEST, contract, "burn", None, {"amount": 3}, pub, timeout=60, clock=CLOCK
    )
    with pytest.raises(MessageError, match="64 bytes"):
        unsigned.complete(b"\x01" * 63)
    with pytest.raises(MessageError, match="does not match"):
        unsigned.complete(b"\x00" * 64)
    # Unverified completion still builds the envelope.
    assert unsigned.complete(b"\x00" * 64, verify=False).expire_at == 1_700_000_060


def test_refresh_rereads_the_clock(contract: Contract, keypair) -> None:
    _, pub = keypair
    unsigned = create_external_message(
        DEST, contract, "burn", None, {"amount": 3}, pub, timeout=60, clock=CLOCK
    )
    later = unsigned.refresh(ConstantClock(NOW_MS + 10_000))
    assert later.expire_at.timestamp == 1_700_000_070
    assert later.time_ms == NOW_MS + 10_000
    assert later.hash != unsigned.hash
    assert later.tokens == unsigned.tokens


# ---------------------------------------------------------------------------
# Keys & internal bodies
# ---------------------------------------------------------------------------


def test_check_public_key(keypair) -> None:
    _, pub = keypair
    assert check_public_key(pub.hex()) == pub
    assert check_public_key(pub) == pub
    with pytest.raises(MessageError):
        check_public_key("not hex")
    with pytest.raises(MessageError):
        check_public_key("aa" * 31)


def test_encode_internal_input(contract: Contract) -> None:
    body = boc_from_base64(encode_internal_input(contract, "burn", {"amount": "42"}))
    s = body.begin_parse()
    assert s.load_uint(32) == contract.require_function("burn").input_id
    assert s.load_uint(64) == 42
    assert s.is_empty()
