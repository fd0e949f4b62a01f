"""Tests for the in-memory reference ledger."""

from __future__ import annotations

from dataclasses import replace

import pytest

from offline_pay.errors.ledger_errors import LedgerRejected, LedgerSubmissionFailed
from offline_pay.ledger.memory import MemoryLedger
from offline_pay.ledger.models import BatchReceipt, LedgerEntry


@pytest.fixture
def ledger() -> MemoryLedger:
    return MemoryLedger()


def _entries(keypair, signed_tx, nonces, recipient="0xabc"):
    return [LedgerEntry.from_transaction(signed_tx(keypair, recipient, n)) for n in nonces]


class TestMemoryLedger:
    async def test_accepts_consecutive_nonces(self, ledger, alice, signed_tx):
        entries = _entries(alice, signed_tx, [1, 2, 3])
        receipt = await ledger.submit_batch(entries)

        assert all(o.accepted for o in receipt.outcomes)
        assert ledger.last_nonce(alice.address) == 3
        assert [e.hash for e in ledger.accepted] == [e.hash for e in entries]

    async def test_rejects_gap(self, ledger, alice, signed_tx):
        receipt = await ledger.submit_batch(_entries(alice, signed_tx, [2]))
        assert receipt.outcomes[0].accepted is False
        assert receipt.outcomes[0].reason == "nonce 2, expected 1"

    async def test_rejects_replay(self, ledger, alice, signed_tx):
        entries = _entries(alice, signed_tx, [1])
        await ledger.submit_batch(entries)
        receipt = await ledger.submit_batch(entries)
        assert receipt.outcomes[0].reason == "replay"

    async def test_rejects_hash_mismatch(self, ledger, alice, signed_tx):
        (entry,) = _entries(alice, signed_tx, [1])
        forged = replace(entry, amount="9999")
        receipt = await ledger.submit_batch([forged])
        assert receipt.outcomes[0].reason == "hash mismatch"
        assert not ledger.is_accepted(forged.hash)

    async def test_unreachable(self, ledger, alice, signed_tx):
        ledger.unreachable = True
        with pytest.raises(LedgerSubmissionFailed):
            await ledger.submit_batch(_entries(alice, signed_tx, [1]))
        assert ledger.batches == []

    async def test_oversized(self, ledger, alice, signed_tx):
        with pytest.raises(LedgerRejected):
            await ledger.submit_batch(_entries(alice, signed_tx, range(1, 22)))


class TestBatchReceipt:
    def test_from_dict_ignores_junk_results(self):
        receipt = BatchReceipt.from_dict(
            {"batchId": "b", "results": [{"hash": "h", "accepted": True}, "junk"]}
        )
        assert len(receipt.outcomes) == 1
        assert receipt.outcome_for("missing") is None

    @pytest.mark.parametrize("verdict", ["false", "true", 1, None])
    def test_non_boolean_verdict_is_left_out(self, verdict):
        receipt = BatchReceipt.from_dict(
            {"batchId": "b", "results": [{"hash": "h", "accepted": verdict}]}
        )
        assert receipt.outcome_for("h") is None

    def test_missing_results_is_empty(self):
        assert BatchReceipt.from_dict({"batchId": "b"}).outcomes == []

    @pytest.mark.parametrize("body", [[], "x", {"results": 5}, {"results": {"h": True}}])
    def test_wrong_shape_raises_value_error(self, body):
        with pytest.raises(ValueError, match="receipt"):
            BatchReceipt.from_dict(body)

    def test_to_dict_shape(self):
        receipt = BatchReceipt.from_dict(
            {"batchId": "b", "results": [{"hash": "h", "accepted": False}]}
        )
        assert receipt.to_dict() == {
            "batchId": "b",
            "results": [{"hash": "h", "accepted": False, "reason": ""}],
        }
