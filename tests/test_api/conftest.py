"""Fixtures for the HTTP API tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from fastapi.testclient import TestClient

from offline_pay.api.app import create_app

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture
def client(app_config) -> Iterator[TestClient]:
    """A client bound to a started node (memory mesh, memory ledger, offline)."""
    with TestClient(create_app(config=app_config)) as c:
        yield c
