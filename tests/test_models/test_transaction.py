"""Tests for the transaction domain model — status lattice, validation, wire form."""

from __future__ import annotations

import pytest

from offline_pay.errors.mesh_errors import MalformedMessage
from offline_pay.models.transaction import (
    OfflineTransaction,
    TransactionOrigin,
    TransactionStatus,
    can_transition,
    is_valid_amount,
)

S = TransactionStatus


def _wire(**overrides):
    data = {
        "id": "tx-1",
        "from": "0xaaa",
        "to": "0xbbb",
        "amount": "10",
        "nonce": 1,
        "timestamp": 1000,
        "signature": "sig",
        "hash": "h" * 64,
        "metadata": {"senderPublicKey": "pk"},
    }
    data.update(overrides)
    return data


# ---------------------------------------------------------------------------
# Status lattice
# ---------------------------------------------------------------------------


class TestStatusLattice:
    @pytest.mark.parametrize(
        ("current", "new"),
        [
            (S.PENDING, S.PROCESSING),
            (S.PROCESSING, S.COMPLETED),
            (S.PROCESSING, S.PENDING),
            (S.PROCESSING, S.REJECTED),
            (S.FAILED, S.PENDING),
        ],
    )
    def test_allowed(self, current, new):
        assert can_transition(current, new) is True

    @pytest.mark.parametrize(
        ("current", "new"),
        [
            (S.COMPLETED, S.PENDING),
            (S.COMPLETED, S.PROCESSING),
            (S.REJECTED, S.PENDING),
            (S.REJECTED, S.COMPLETED),
            (S.FAILED, S.PROCESSING),
        ],
    )
    def test_refused(self, current, new):
        assert can_transition(current, new) is False

    def test_terminal_states(self):
        assert S.COMPLETED.is_terminal
        assert S.REJECTED.is_terminal
        assert not S.FAILED.is_terminal
        assert not S.PENDING.is_terminal


# ---------------------------------------------------------------------------
# Amount validation
# ---------------------------------------------------------------------------


class TestAmount:
    @pytest.mark.parametrize("amount", ["10", "0.5", "1e3", "10.50"])
    def test_valid(self, amount):
        assert is_valid_amount(amount)

    @pytest.mark.parametrize("amount", ["0", "-1", "abc", "", " 10", "NaN", "Infinity", 10, None])
    def test_invalid(self, amount):
        assert not is_valid_amount(amount)


# ---------------------------------------------------------------------------
# Wire form
# ---------------------------------------------------------------------------


class TestWire:
    def test_from_wire(self):
        tx = OfflineTransaction.from_wire(_wire())
        assert tx.sender == "0xaaa"
        assert tx.recipient == "0xbbb"
        assert tx.status == S.PENDING
        assert tx.origin == TransactionOrigin.MESH
        assert tx.sender_public_key == "pk"

    def test_wire_status_ignored(self):
        tx = OfflineTransaction.from_wire(_wire(status="COMPLETED", syncedOnLedger=True))
        assert tx.status == S.PENDING
        assert tx.synced_on_ledger is False

    def test_to_wire_uses_from_and_to(self):
        tx = OfflineTransaction.from_wire(_wire())
        wire = tx.to_wire()
        assert wire["from"] == "0xaaa"
        assert wire["to"] == "0xbbb"
        assert "status" not in wire

    @pytest.mark.parametrize(
        "overrides",
        [
            {"nonce": "1"},
            {"nonce": 0},
            {"nonce": True},
            {"timestamp": -1},
            {"amount": 10},
            {"amount": "-5"},
            {"from": None},
            {"hash": 123},
            {"metadata": []},
        ],
    )
    def test_malformed(self, overrides):
        with pytest.raises(MalformedMessage):
            OfflineTransaction.from_wire(_wire(**overrides))

    def test_not_a_dict(self):
        with pytest.raises(MalformedMessage):
            OfflineTransaction.from_wire(["nope"])

    def test_with_status_copies(self):
        tx = OfflineTransaction.from_wire(_wire())
        done = tx.with_status(S.COMPLETED)
        assert done.status == S.COMPLETED
        assert tx.status == S.PENDING
