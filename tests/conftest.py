"""Shared test fixtures for the offline-pay test suite."""

from __future__ import annotations

import itertools
import uuid
from typing import TYPE_CHECKING, Any

import pytest

from offline_pay.config.settings import (
    AppConfig,
    DatabaseConfig,
    DatabaseEngine,
    LedgerConfig,
    MeshConfig,
    MeshTransportKind,
    SyncConfig,
)
from offline_pay.crypto.keys import generate_keypair, sign_transaction
from offline_pay.models.transaction import OfflineTransaction, TransactionOrigin

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from offline_pay.models.transaction import Keypair

MEMORY_DSN = "sqlite+aiosqlite:///:memory:"

_clock = itertools.count(1_700_000_000_000)


def db_config() -> DatabaseConfig:
    return DatabaseConfig(engine=DatabaseEngine.SQLITE, dsn=MEMORY_DSN)


def make_signed_tx(
    keypair: Keypair,
    recipient: str,
    nonce: int,
    *,
    amount: str = "10",
    timestamp: int | None = None,
    origin: TransactionOrigin = TransactionOrigin.LOCAL,
    metadata: dict[str, Any] | None = None,
) -> OfflineTransaction:
    """Build a correctly signed transaction from *keypair*."""
    ts = next(_clock) if timestamp is None else timestamp
    signature, tx_hash = sign_transaction(
        amount, keypair.address, recipient, nonce, ts, keypair.private_key
    )
    return OfflineTransaction(
        id=uuid.uuid4().hex,
        sender=keypair.address,
        recipient=recipient,
        amount=amount,
        nonce=nonce,
        timestamp=ts,
        signature=signature,
        hash=tx_hash,
        metadata={**(metadata or {}), "senderPublicKey": keypair.public_key},
        origin=origin,
    )


@pytest.fixture
def app_config() -> AppConfig:
    """Provide a test AppConfig: in-memory store, memory mesh, memory ledger, offline."""
    return AppConfig(
        db=db_config(),
        mesh=MeshConfig(transport=MeshTransportKind.MEMORY, peer_id="peer-test"),
        ledger=LedgerConfig(url=""),
        sync=SyncConfig(start_online=False),
    )


@pytest.fixture
async def datastore() -> AsyncIterator:
    """An open in-memory datastore with all tables created."""
    from offline_pay.datastore.client import Datastore
    from offline_pay.store.tables import Base

    ds = Datastore(db_config())
    await ds.open(base=Base)
    yield ds
    await ds.close()


@pytest.fixture
def store(datastore):
    from offline_pay.store.ledger_store import LocalLedgerStore

    return LocalLedgerStore(datastore)


@pytest.fixture(scope="session")
def alice() -> Keypair:
    return generate_keypair()


@pytest.fixture(scope="session")
def bob() -> Keypair:
    return generate_keypair()


@pytest.fixture
def signed_tx() -> Callable[..., OfflineTransaction]:
    """Factory for signed transactions (see ``make_signed_tx``)."""
    return make_signed_tx
