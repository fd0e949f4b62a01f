"""Tests for HttpLedgerClient against an httpx mock transport."""

from __future__ import annotations

import json

import httpx
import pytest

from offline_pay.config.settings import LedgerConfig
from offline_pay.errors.ledger_errors import LedgerRejected, LedgerSubmissionFailed
from offline_pay.ledger.client import HttpLedgerClient
from offline_pay.ledger.models import LedgerEntry


def _entry(nonce: int = 1) -> LedgerEntry:
    return LedgerEntry(
        hash=f"h{nonce}",
        sender="A",
        recipient="B",
        amount="10",
        nonce=nonce,
        timestamp=1000 + nonce,
        signature="sig",
    )


def _config(**overrides) -> LedgerConfig:
    values = {"url": "http://ledger.test/", "token": "secret", "timeout": 5.0}
    values.update(overrides)
    return LedgerConfig(**values)


async def _client(handler, **config) -> HttpLedgerClient:
    client = HttpLedgerClient(_config(**config), transport=httpx.MockTransport(handler))
    await client.connect()
    return client


# ---------------------------------------------------------------------------
# Success path
# ---------------------------------------------------------------------------


class TestSubmit:
    async def test_posts_batch_and_parses_receipt(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "batchId": "b-1",
                    "results": [
                        {"hash": "h1", "accepted": True},
                        {"hash": "h2", "accepted": False, "reason": "nonce gap"},
                    ],
                },
            )

        client = await _client(handler)
        try:
            receipt = await client.submit_batch([_entry(1), _entry(2)])
        finally:
            await client.close()

        assert receipt.batch_id == "b-1"
        assert receipt.outcome_for("h1").accepted is True
        assert receipt.outcome_for("h2").reason == "nonce gap"

        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/v1/batches"
        assert request.headers["Authorization"] == "Bearer secret"
        body = json.loads(request.content)
        assert [t["nonce"] for t in body["transactions"]] == [1, 2]
        assert body["transactions"][0]["from"] == "A"
        assert body["transactions"][0]["to"] == "B"

    async def test_no_token_no_auth_header(self):
        headers: list[httpx.Headers] = []

        def handler(request: httpx.Request) -> httpx.Response:
            headers.append(request.headers)
            return httpx.Response(202, json={"batchId": "b", "results": []})

        client = await _client(handler, token="")
        try:
            await client.submit_batch([_entry()])
        finally:
            await client.close()
        assert "Authorization" not in headers[0]

    async def test_empty_batch_skips_request(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        client = await _client(handler)
        receipt = await client.submit_batch([])
        await client.close()
        assert receipt.outcomes == []

    async def test_connect_and_close(self):
        client = HttpLedgerClient(_config())
        assert client.is_connected is False
        await client.connect()
        assert client.is_connected is True
        await client.close()
        assert client.is_connected is False


# ---------------------------------------------------------------------------
# Failure classification
# ---------------------------------------------------------------------------


class TestFailures:
    @pytest.mark.parametrize("status", [429, 500, 502, 503])
    async def test_transient_statuses(self, status):
        client = await _client(lambda request: httpx.Response(status, json={"detail": "busy"}))
        with pytest.raises(LedgerSubmissionFailed) as exc_info:
            await client.submit_batch([_entry()])
        await client.close()
        assert exc_info.value.status_code == status

    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_failure_is_transient(self, status):
        client = await _client(lambda request: httpx.Response(status))
        with pytest.raises(LedgerSubmissionFailed, match="authentication"):
            await client.submit_batch([_entry()])
        await client.close()

    async def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = await _client(handler)
        with pytest.raises(LedgerSubmissionFailed):
            await client.submit_batch([_entry()])
        await client.close()

    async def test_bad_request_rejects_batch(self):
        client = await _client(
            lambda request: httpx.Response(400, json={"detail": "bad signature encoding"})
        )
        with pytest.raises(LedgerRejected, match="bad signature encoding") as exc_info:
            await client.submit_batch([_entry()])
        await client.close()
        assert exc_info.value.status_code == 400

    async def test_non_json_error_body(self):
        client = await _client(lambda request: httpx.Response(422, text="nope"))
        with pytest.raises(LedgerRejected, match="nope"):
            await client.submit_batch([_entry()])
        await client.close()

    async def test_unreadable_receipt(self):
        client = await _client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(LedgerSubmissionFailed, match="unreadable"):
            await client.submit_batch([_entry()])
        await client.close()

    @pytest.mark.parametrize("body", [[], {"batchId": "b", "results": 5}, 42])
    async def test_receipt_of_wrong_shape(self, body):
        client = await _client(lambda request: httpx.Response(200, json=body))
        with pytest.raises(LedgerSubmissionFailed, match="unreadable"):
            await client.submit_batch([_entry()])
        await client.close()

    async def test_oversized_batch(self):
        client = await _client(lambda request: httpx.Response(200, json={}))
        with pytest.raises(LedgerRejected) as exc_info:
            await client.submit_batch([_entry(n) for n in range(1, 22)])
        await client.close()
        assert exc_info.value.status_code == 413

    async def test_not_connected(self):
        client = HttpLedgerClient(_config())
        with pytest.raises(LedgerSubmissionFailed, match="not connected"):
            await client.submit_batch([_entry()])
