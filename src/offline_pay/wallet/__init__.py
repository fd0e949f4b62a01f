"""Device wallet — identity, payment creation and payload exchange."""

from __future__ import annotations

from offline_pay.wallet.service import OfflineWallet

__all__ = ["OfflineWallet"]
