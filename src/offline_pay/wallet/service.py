"""OfflineWallet — the local user's view of the offline payment engine.

Creates signed payments from the device identity, ingests payments handed
over outside the mesh (exchange payloads), and floods both onto the mesh
when peers are connected.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import TYPE_CHECKING, Any

from offline_pay.crypto.keys import generate_keypair, sign_transaction, verify_transaction
from offline_pay.errors.definitions import (
    ErrInvalidAmount,
    ErrInvalidRecipient,
    ErrNoKeypair,
    ErrTransactionNotFound,
)
from offline_pay.exchange.payload import deserialize_payload, serialize_payload
from offline_pay.mesh.messages import now_ms
from offline_pay.models.transaction import (
    OfflineTransaction,
    TransactionOrigin,
    is_valid_amount,
)
from offline_pay.store.ledger_store import PutResult

if TYPE_CHECKING:
    from offline_pay.mesh.router import GossipRouter, PropagationResult
    from offline_pay.models.transaction import Keypair
    from offline_pay.store.ledger_store import LocalLedgerStore

logger = logging.getLogger(__name__)


class OfflineWallet:
    """Local payments for one device identity.

    Usage::

        wallet = OfflineWallet(store, router)
        await wallet.initialize_identity()
        tx, propagation = await wallet.create_transaction("0xabc...", "10")
        payload = await wallet.export_payload(tx.hash)
    """

    def __init__(self, store: LocalLedgerStore, router: GossipRouter | None = None) -> None:
        self._store = store
        self._router = router
        self._keypair: Keypair | None = None
        self._create_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    async def initialize_identity(self) -> Keypair:
        """Load the device keypair, creating and persisting one on first run."""
        if self._keypair is not None:
            return self._keypair
        keypair = await self._store.get_keypair()
        if keypair is None:
            keypair = generate_keypair()
            await self._store.save_keypair(keypair)
            logger.info("Created device identity %s", keypair.address)
        self._keypair = keypair
        return keypair

    @property
    def keypair(self) -> Keypair:
        """The device keypair.

        Raises:
            OfflinePayError: If the identity has not been initialized.
        """
        if self._keypair is None:
            raise ErrNoKeypair
        return self._keypair

    @property
    def address(self) -> str:
        return self.keypair.address

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    async def create_transaction(
        self,
        recipient: str,
        amount: str,
        metadata: dict[str, Any] | None = None,
    ) -> tuple[OfflineTransaction, PropagationResult | None]:
        """Sign a payment to *recipient*, store it PENDING and flood it.

        Returns:
            The stored transaction and the flood result (None without a mesh).

        Raises:
            OfflinePayError: On an invalid amount or recipient, or with no identity.
        """
        keypair = self.keypair
        if not isinstance(recipient, str) or not recipient.strip():
            raise ErrInvalidRecipient
        if not is_valid_amount(amount):
            raise ErrInvalidAmount

        async with self._create_lock:
            nonce = await self._store.next_nonce(keypair.address)
            timestamp = now_ms()
            signature, tx_hash = sign_transaction(
                amount, keypair.address, recipient, nonce, timestamp, keypair.private_key
            )
            tx = OfflineTransaction(
                id=uuid.uuid4().hex,
                sender=keypair.address,
                recipient=recipient,
                amount=amount,
                nonce=nonce,
                timestamp=timestamp,
                signature=signature,
                hash=tx_hash,
                metadata={**(metadata or {}), "senderPublicKey": keypair.public_key},
                origin=TransactionOrigin.LOCAL,
            )
            await self._store.put_transaction(tx)
        logger.info("Created transaction %s nonce %d to %s", tx.hash[:16], nonce, recipient)

        propagation = await self._flood(tx)
        return tx, propagation

    async def receive_transaction(
        self, tx: OfflineTransaction
    ) -> tuple[PutResult, PropagationResult | None]:
        """Verify and store a transaction handed over outside the mesh.

        New transactions are flooded onward; duplicates are not.

        Raises:
            HashMismatch: If the declared hash is wrong.
            SignatureInvalid: If the signature or key binding fails.
        """
        verify_transaction(tx)
        result = await self._store.put_transaction(tx)
        if result == PutResult.ALREADY_PRESENT:
            logger.debug("Transaction %s already known", tx.hash[:16])
            return result, None
        return result, await self._flood(tx)

    async def _flood(self, tx: OfflineTransaction) -> PropagationResult | None:
        if self._router is None:
            return None
        propagation = await self._router.broadcast_transaction(tx)
        if propagation.propagated:
            await self._store.mark_propagated(tx.hash)
            tx.mesh_propagated = True
        return propagation

    # ------------------------------------------------------------------
    # Exchange payloads
    # ------------------------------------------------------------------

    async def export_payload(self, tx_hash: str) -> str:
        """Render a stored transaction as an exchange payload.

        Raises:
            OfflinePayError: If no transaction has that hash.
        """
        tx = await self._store.get_transaction(tx_hash)
        if tx is None:
            raise ErrTransactionNotFound
        return serialize_payload(tx)

    async def import_payload(
        self, text: str
    ) -> tuple[OfflineTransaction, PutResult, PropagationResult | None]:
        """Parse, verify and store an exchange payload.

        Raises:
            MalformedMessage: If the payload cannot be parsed.
            HashMismatch: If the declared hash is wrong.
            SignatureInvalid: If the signature or key binding fails.
        """
        tx = deserialize_payload(text)
        result, propagation = await self.receive_transaction(tx)
        return tx, result, propagation

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def transactions(self, *, limit: int = 100) -> list[OfflineTransaction]:
        """Transactions sent or received by this device, newest first."""
        return await self._store.list_transactions(address=self.address, limit=limit)

    async def get_transaction(self, tx_hash: str) -> OfflineTransaction:
        tx = await self._store.get_transaction(tx_hash)
        if tx is None:
            raise ErrTransactionNotFound
        return tx

    async def reset(self) -> None:
        """Delete all stored transactions. The identity is kept."""
        await self._store.reset()
