"""Transaction exchange payload (QR / manual transfer)."""

from offline_pay.exchange.payload import (
    PAYLOAD_TYPE,
    PAYLOAD_VERSION,
    deserialize_payload,
    serialize_payload,
)

__all__ = ["PAYLOAD_TYPE", "PAYLOAD_VERSION", "deserialize_payload", "serialize_payload"]
