"""
Tests for core.py - types, validation helpers and hashing

Tests:
- Address normalisation and uint256 validation
- Checked arithmetic
- Deterministic address derivation and transaction hashes
- Frozen record types (Message, Event, Receipt)
"""

import pytest
from dataclasses import FrozenInstanceError

from custody.core import (
    Message, Event, Receipt, ExecuteResult, TransactionKind,
    ArithmeticOverflow, InvalidAmount,
    to_address, validate_amount, checked_add, checked_sub,
    derive_address, compute_tx_hash,
    UINT256_MAX, ZERO_ADDRESS,
)


ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20


class TestValidation:
    """Tests for to_address() and validate_amount()."""

    def test_to_address_checksums(self):
        assert to_address(ALICE).lower() == ALICE
        assert to_address(to_address(ALICE)) == to_address(ALICE)

    @pytest.mark.parametrize("bad", ["", "0x", "0x1234", "alice", None, 42, b"\x00" * 20])
    def test_to_address_rejects(self, bad):
        with pytest.raises(ValueError):
            to_address(bad)

    def test_validate_amount_bounds(self):
        assert validate_amount(0) == 0
        assert validate_amount(UINT256_MAX) == UINT256_MAX
        with pytest.raises(ValueError):
            validate_amount(-1)
        with pytest.raises(ValueError):
            validate_amount(UINT256_MAX + 1)

    @pytest.mark.parametrize("bad", [1.0, "1", True, None])
    def test_validate_amount_rejects_non_ints(self, bad):
        with pytest.raises(ValueError):
            validate_amount(bad)


class TestCheckedArithmetic:
    """Tests for checked_add() and checked_sub()."""

    def test_add(self):
        assert checked_add(2, 3) == 5
        assert checked_add(UINT256_MAX - 1, 1) == UINT256_MAX

    def test_add_overflow(self):
        with pytest.raises(ArithmeticOverflow):
            checked_add(UINT256_MAX, 1)

    def test_sub_underflow(self):
        assert checked_sub(3, 3) == 0
        with pytest.raises(ArithmeticOverflow):
            checked_sub(2, 3)


class TestHashing:
    """Tests for derive_address() and compute_tx_hash()."""

    def test_derive_address_is_stable(self):
        assert derive_address("account", "alice") == derive_address("account", "alice")
        assert derive_address("account", "alice") != derive_address("account", "bob")
        assert to_address(derive_address("contract", ALICE, 0)) == derive_address("contract", ALICE, 0)

    def test_tx_hash_ignores_address_case(self):
        h1 = compute_tx_hash(1, TransactionKind.CALL, ALICE, BOB, "deposit", (), 5, 0)
        h2 = compute_tx_hash(1, TransactionKind.CALL, to_address(ALICE), to_address(BOB), "deposit", (), 5, 0)
        assert h1 == h2
        assert h1.startswith("0x") and len(h1) == 66

    @pytest.mark.parametrize("change", [
        dict(chain_id=2),
        dict(nonce=1),
        dict(value=6),
        dict(method="withdraw"),
        dict(args=(1,)),
    ])
    def test_tx_hash_covers_content(self, change):
        base = dict(chain_id=1, kind=TransactionKind.CALL, sender=ALICE, to=BOB,
                    method="deposit", args=(), value=5, nonce=0)
        assert compute_tx_hash(**base) != compute_tx_hash(**{**base, **change})

    def test_int_and_string_arguments_differ(self):
        a = compute_tx_hash(1, TransactionKind.CALL, ALICE, BOB, "f", (1,), 0, 0)
        b = compute_tx_hash(1, TransactionKind.CALL, ALICE, BOB, "f", ("1",), 0, 0)
        assert a != b


class TestRecords:
    """Tests for the frozen record types."""

    def test_message_validation(self):
        with pytest.raises(ValueError):
            Message(sender="", value=0, origin=ALICE)
        with pytest.raises(ValueError):
            Message(sender=ALICE, value=-1, origin=ALICE)

    def test_message_is_frozen(self):
        msg = Message(sender=ALICE, value=1, origin=ALICE)
        with pytest.raises(FrozenInstanceError):
            msg.value = 2

    def test_event_topics(self):
        event = Event(
            address=ZERO_ADDRESS, name="FundsReceived", signature="FundsReceived(address,uint256)",
            names=("sender", "amount"), values=(ALICE, 5),
            block_number=1, transaction_hash="0x00", log_index=0,
        )
        assert event.topic1 == ALICE
        assert event.topic2 == 5
        assert event.args == {"sender": ALICE, "amount": 5}
        assert repr(event) == f"FundsReceived(sender={ALICE}, amount=5)"

    def test_receipt_status(self):
        ok = Receipt("0x01", 1, 0, ALICE, BOB, "deposit", 1, ExecuteResult.APPLIED)
        failed = Receipt("0x02", 2, 1, ALICE, BOB, "deposit", 0, ExecuteResult.REVERTED,
                         error=InvalidAmount("zero"))
        assert (ok.status, ok.succeeded, ok.revert_reason) == (1, True, None)
        assert (failed.status, failed.succeeded, failed.revert_reason) == (0, False, "zero")
        ok.raise_for_error()
        with pytest.raises(InvalidAmount):
            failed.raise_for_error()
