"""Tests for OfflineWallet — identity, payments, exchange payloads."""

from __future__ import annotations

import json

import pytest

from offline_pay.errors.base import OfflinePayError
from offline_pay.errors.mesh_errors import HashMismatch, MalformedMessage, SignatureInvalid
from offline_pay.exchange.payload import serialize_payload
from offline_pay.mesh.router import PropagationResult
from offline_pay.models.transaction import TransactionOrigin, TransactionStatus
from offline_pay.store.ledger_store import PutResult
from offline_pay.wallet.service import OfflineWallet


class _FakeRouter:
    """Records floods; reports *peers* deliveries."""

    def __init__(self, peers: int = 2) -> None:
        self.peers = peers
        self.flooded: list[str] = []

    async def broadcast_transaction(self, tx) -> PropagationResult:
        self.flooded.append(tx.hash)
        return PropagationResult(message_id=f"m{len(self.flooded)}", peers=self.peers)


@pytest.fixture
async def wallet(store) -> OfflineWallet:
    w = OfflineWallet(store)
    await w.initialize_identity()
    return w


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class TestIdentity:
    async def test_identity_persisted(self, store):
        first = OfflineWallet(store)
        kp = await first.initialize_identity()

        second = OfflineWallet(store)
        assert (await second.initialize_identity()) == kp
        assert second.address == kp.address
        assert kp.address.startswith("0x")

    async def test_keypair_required(self, store):
        w = OfflineWallet(store)
        with pytest.raises(OfflinePayError) as exc_info:
            _ = w.address
        assert exc_info.value.code == "no-keypair"


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


class TestCreate:
    async def test_nonces_increment(self, wallet, bob):
        tx1, propagation = await wallet.create_transaction(bob.address, "10")
        tx2, _ = await wallet.create_transaction(bob.address, "2.5", {"memo": "coffee"})

        assert propagation is None
        assert (tx1.nonce, tx2.nonce) == (1, 2)
        assert tx2.metadata["memo"] == "coffee"
        assert tx2.metadata["senderPublicKey"] == wallet.keypair.public_key
        assert tx1.status == TransactionStatus.PENDING
        assert tx1.origin == TransactionOrigin.LOCAL

    async def test_created_transaction_verifies(self, wallet, bob):
        from offline_pay.crypto.keys import verify_transaction

        tx, _ = await wallet.create_transaction(bob.address, "10")
        verify_transaction(tx)

    @pytest.mark.parametrize("amount", ["0", "-1", "abc", "", " 5", "NaN"])
    async def test_invalid_amount(self, wallet, bob, amount):
        with pytest.raises(OfflinePayError) as exc_info:
            await wallet.create_transaction(bob.address, amount)
        assert exc_info.value.code == "invalid-amount"

    async def test_invalid_recipient(self, wallet):
        with pytest.raises(OfflinePayError) as exc_info:
            await wallet.create_transaction("  ", "10")
        assert exc_info.value.code == "invalid-recipient"

    async def test_flood_marks_propagated(self, store, bob):
        router = _FakeRouter(peers=1)
        w = OfflineWallet(store, router)
        await w.initialize_identity()

        tx, propagation = await w.create_transaction(bob.address, "10")

        assert propagation.propagated
        assert router.flooded == [tx.hash]
        assert (await store.get_transaction(tx.hash)).mesh_propagated is True

    async def test_no_peers_not_propagated(self, store, bob):
        w = OfflineWallet(store, _FakeRouter(peers=0))
        await w.initialize_identity()

        tx, propagation = await w.create_transaction(bob.address, "10")

        assert propagation.propagated is False
        assert (await store.get_transaction(tx.hash)).mesh_propagated is False


# ---------------------------------------------------------------------------
# Exchange payloads
# ---------------------------------------------------------------------------


class TestExchange:
    async def test_export_import_between_devices(self, wallet, store, bob):
        tx, _ = await wallet.create_transaction(bob.address, "10")
        payload = await wallet.export_payload(tx.hash)

        await wallet.reset()
        received, result, propagation = await wallet.import_payload(payload)

        assert result == PutResult.STORED
        assert propagation is None
        assert received.hash == tx.hash
        assert received.origin == TransactionOrigin.EXCHANGE

    async def test_import_duplicate_is_not_reflooded(self, store, alice, bob, signed_tx):
        router = _FakeRouter()
        w = OfflineWallet(store, router)
        payload = serialize_payload(signed_tx(alice, bob.address, 1))

        _, first, _ = await w.import_payload(payload)
        _, second, propagation = await w.import_payload(payload)

        assert first == PutResult.STORED
        assert second == PutResult.ALREADY_PRESENT
        assert propagation is None
        assert len(router.flooded) == 1

    async def test_import_rejects_tampering(self, wallet, alice, bob, signed_tx):
        body = json.loads(serialize_payload(signed_tx(alice, bob.address, 1)))
        body["amount"] = "99"
        with pytest.raises(HashMismatch):
            await wallet.import_payload(json.dumps(body))

    async def test_import_rejects_foreign_key(self, wallet, alice, bob, signed_tx):
        tx = signed_tx(alice, bob.address, 1)
        tx.metadata["senderPublicKey"] = bob.public_key
        with pytest.raises(SignatureInvalid):
            await wallet.import_payload(serialize_payload(tx))

    async def test_import_rejects_garbage(self, wallet):
        with pytest.raises(MalformedMessage):
            await wallet.import_payload("not json")

    async def test_export_unknown(self, wallet):
        with pytest.raises(OfflinePayError) as exc_info:
            await wallet.export_payload("0" * 64)
        assert exc_info.value.status_code == 404


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestQueries:
    async def test_transactions_scoped_to_wallet(self, wallet, store, alice, bob, signed_tx):
        mine, _ = await wallet.create_transaction(bob.address, "10")
        await store.put_transaction(signed_tx(alice, bob.address, 1))
        incoming = signed_tx(alice, wallet.address, 2)
        await store.put_transaction(incoming)

        hashes = {tx.hash for tx in await wallet.transactions()}

        assert hashes == {mine.hash, incoming.hash}

    async def test_get_transaction(self, wallet, bob):
        tx, _ = await wallet.create_transaction(bob.address, "10")
        assert (await wallet.get_transaction(tx.hash)).id == tx.id
        with pytest.raises(OfflinePayError):
            await wallet.get_transaction("f" * 64)
