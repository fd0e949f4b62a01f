"""Transaction exchange payload — the self-contained form rendered as a QR code.

Wire shape::

    {"type": "GLOBE_PAY_TX", "version": "1.0", "id": ..., "from": ...,
     "to": ..., "amount": ..., "nonce": ..., "timestamp": ...,
     "signature": ..., "hash": ..., "metadata": {...}}
"""

from __future__ import annotations

import json

from offline_pay.errors.mesh_errors import MalformedMessage
from offline_pay.models.transaction import OfflineTransaction, TransactionOrigin

PAYLOAD_TYPE = "GLOBE_PAY_TX"
PAYLOAD_VERSION = "1.0"


def serialize_payload(tx: OfflineTransaction) -> str:
    """Render *tx* as a compact JSON exchange payload."""
    body = {"type": PAYLOAD_TYPE, "version": PAYLOAD_VERSION, **tx.to_wire()}
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False)


def deserialize_payload(
    text: str,
    *,
    origin: TransactionOrigin = TransactionOrigin.EXCHANGE,
) -> OfflineTransaction:
    """Parse an exchange payload into a PENDING transaction.

    Raises:
        MalformedMessage: If the text is not JSON, has the wrong type tag or
            version, or is missing transaction fields.
    """
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise MalformedMessage(f"exchange payload is not JSON: {exc}") from exc
    if not isinstance(data, dict) or data.get("type") != PAYLOAD_TYPE:
        raise MalformedMessage("not a transaction exchange payload")
    if data.get("version") != PAYLOAD_VERSION:
        raise MalformedMessage(f"unsupported payload version {data.get('version')!r}")
    return OfflineTransaction.from_wire(data, origin=origin)
