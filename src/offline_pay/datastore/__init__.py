"""Async SQLAlchemy engine and session management."""

from offline_pay.datastore.client import Datastore

__all__ = ["Datastore"]
