"""Ed25519 signing and verification for offline transactions.

Implements the stateless signer/verifier:
- Keypair generation (Ed25519, base58-encoded keys)
- Address derivation from the public key
- The canonical ``amount:from:to:nonce:timestamp`` signing message
- Deterministic signing, non-raising verification
- SHA-256 content hash used as the transaction identity on the ledger
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ecdsa import Ed25519, SigningKey, VerifyingKey
from ecdsa.errors import MalformedPointError
from ecdsa.keys import BadSignatureError

from offline_pay.errors.mesh_errors import HashMismatch, SignatureInvalid
from offline_pay.models.transaction import Keypair
from offline_pay.utils.crypto import base58_decode, base58_encode, sha256_hex

if TYPE_CHECKING:
    from offline_pay.models.transaction import OfflineTransaction

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_CURVE = Ed25519
_KEY_SIZE = 32
_SIGNATURE_SIZE = 64
_ADDRESS_BYTES = 20


# ---------------------------------------------------------------------------
# Keys & addresses
# ---------------------------------------------------------------------------


def generate_keypair() -> Keypair:
    """Generate a fresh Ed25519 keypair.

    Entropy comes from ``os.urandom``; any failure there propagates.
    """
    sk = SigningKey.generate(curve=_CURVE)
    public_key = sk.get_verifying_key().to_string()
    return Keypair(
        address=derive_address(base58_encode(public_key)),
        public_key=base58_encode(public_key),
        private_key=base58_encode(sk.to_string()),
    )


def derive_address(public_key: str) -> str:
    """Derive the ``0x``-prefixed address from a base58 public key.

    The address is the hex of the last 20 bytes of the raw key.

    Raises:
        ValueError: If the key is not a 32-byte base58 string.
    """
    raw = base58_decode(public_key)
    if len(raw) != _KEY_SIZE:
        msg = f"Invalid public key length: {len(raw)}"
        raise ValueError(msg)
    return "0x" + raw[-_ADDRESS_BYTES:].hex()


def public_key_for(private_key: str) -> str:
    """Return the base58 public key matching a base58 private key."""
    sk = SigningKey.from_string(base58_decode(private_key), curve=_CURVE)
    return base58_encode(sk.get_verifying_key().to_string())


# ---------------------------------------------------------------------------
# Canonical message, hash, signature
# ---------------------------------------------------------------------------


def canonical_message(amount: str, sender: str, recipient: str, nonce: int, timestamp: int) -> str:
    """Build the exact string that is hashed and signed.

    Field order is fixed; changing it breaks every signature already issued.
    """
    return f"{amount}:{sender}:{recipient}:{nonce}:{timestamp}"


def transaction_hash(message: str) -> str:
    """SHA-256 hex digest of the canonical message."""
    return sha256_hex(message.encode("utf-8"))


def sign(message: str, private_key: str) -> str:
    """Sign *message* with a base58 Ed25519 private key.

    Ed25519 signatures are deterministic: the same key and message always
    give the same signature.
    """
    sk = SigningKey.from_string(base58_decode(private_key), curve=_CURVE)
    return base58_encode(sk.sign(message.encode("utf-8")))


def verify(message: str, signature: str, public_key: str) -> bool:
    """Verify a base58 signature. Returns False on any malformed input."""
    try:
        raw_key = base58_decode(public_key)
        raw_sig = base58_decode(signature)
        if len(raw_key) != _KEY_SIZE or len(raw_sig) != _SIGNATURE_SIZE:
            return False
        vk = VerifyingKey.from_string(raw_key, curve=_CURVE)
        return bool(vk.verify(raw_sig, message.encode("utf-8")))
    except (BadSignatureError, MalformedPointError, ValueError, TypeError):
        return False


# ---------------------------------------------------------------------------
# Transaction helpers
# ---------------------------------------------------------------------------


def message_for(tx: OfflineTransaction) -> str:
    """Canonical message of a transaction."""
    return canonical_message(tx.amount, tx.sender, tx.recipient, tx.nonce, tx.timestamp)


def sign_transaction(
    amount: str,
    sender: str,
    recipient: str,
    nonce: int,
    timestamp: int,
    private_key: str,
) -> tuple[str, str]:
    """Sign transaction fields, returning ``(signature, hash)``."""
    message = canonical_message(amount, sender, recipient, nonce, timestamp)
    return sign(message, private_key), transaction_hash(message)


def verify_transaction(tx: OfflineTransaction) -> None:
    """Check the hash, the sender key binding and the signature.

    Raises:
        HashMismatch: If the declared hash is not the recomputed hash.
        SignatureInvalid: If the public key is missing, does not derive the
            sender address, or the signature does not verify.
    """
    message = message_for(tx)
    computed = transaction_hash(message)
    if computed != tx.hash:
        raise HashMismatch(tx.hash, computed)

    public_key = tx.sender_public_key
    if not public_key:
        raise SignatureInvalid("sender public key not provided")
    try:
        address = derive_address(public_key)
    except ValueError as exc:
        raise SignatureInvalid(f"malformed sender public key: {exc}") from exc
    if address != tx.sender:
        raise SignatureInvalid("sender public key does not match the from address")
    if not verify(message, tx.signature, public_key):
        raise SignatureInvalid
