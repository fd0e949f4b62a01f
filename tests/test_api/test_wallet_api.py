"""Tests for the wallet endpoints (/v1/identity, /v1/transactions, /v1/exchange)."""

from __future__ import annotations

from fastapi.testclient import TestClient

from offline_pay.api.app import create_app
from offline_pay.exchange.payload import serialize_payload
from tests.conftest import make_signed_tx


class TestBase:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_not_ready_without_lifespan(self, app_config):
        client = TestClient(create_app(config=app_config))
        resp = client.get("/v1/identity")
        assert resp.status_code == 503
        assert resp.json()["code"] == "not-ready"

    def test_openapi_documents_errors(self, client):
        openapi = client.get("/openapi.json").json()
        assert "ErrorResponse" in openapi["components"]["schemas"]

    def test_identity(self, client):
        body = client.get("/v1/identity").json()
        assert body["address"].startswith("0x")
        assert body["public_key"]
        assert body["peer_id"] == "peer-test"


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class TestTransactions:
    def test_create_and_list(self, client, bob):
        resp = client.post("/v1/transactions", json={"to": bob.address, "amount": "10"})
        assert resp.status_code == 201
        created = resp.json()
        assert created["transaction"]["nonce"] == 1
        assert created["transaction"]["status"] == "PENDING"
        assert created["propagated"] is False
        assert created["peers"] == 0

        second = client.post("/v1/transactions", json={"to": bob.address, "amount": "1.5"})
        assert second.json()["transaction"]["nonce"] == 2

        listed = client.get("/v1/transactions").json()
        assert [tx["nonce"] for tx in listed] == [2, 1]

    def test_get_by_hash(self, client, bob):
        created = client.post("/v1/transactions", json={"to": bob.address, "amount": "10"}).json()
        tx_hash = created["transaction"]["hash"]

        resp = client.get(f"/v1/transactions/{tx_hash}")
        assert resp.status_code == 200
        assert resp.json()["recipient"] == bob.address

    def test_unknown_hash(self, client):
        resp = client.get("/v1/transactions/" + "0" * 64)
        assert resp.status_code == 404
        assert resp.json()["code"] == "transaction-not-found"

    def test_invalid_amount(self, client, bob):
        resp = client.post("/v1/transactions", json={"to": bob.address, "amount": "-3"})
        assert resp.status_code == 400
        assert resp.json() == {
            "code": "invalid-amount",
            "message": "amount must be a positive decimal string",
        }

    def test_missing_recipient_is_validation_error(self, client):
        resp = client.post("/v1/transactions", json={"amount": "10"})
        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Exchange payloads
# ---------------------------------------------------------------------------


class TestExchange:
    def test_export_then_reimport_is_duplicate(self, client, bob):
        created = client.post("/v1/transactions", json={"to": bob.address, "amount": "10"}).json()
        tx_hash = created["transaction"]["hash"]

        payload = client.get(f"/v1/exchange/{tx_hash}").json()["payload"]
        assert '"GLOBE_PAY_TX"' in payload

        resp = client.post("/v1/exchange", json={"payload": payload})
        assert resp.status_code == 201
        assert resp.json()["result"] == "already_present"

    def test_import_foreign_payment(self, client, alice):
        me = client.get("/v1/identity").json()["address"]
        payload = serialize_payload(make_signed_tx(alice, me, 1))

        resp = client.post("/v1/exchange", json={"payload": payload})

        assert resp.status_code == 201
        body = resp.json()
        assert body["result"] == "stored"
        assert body["transaction"]["origin"] == "exchange"
        assert len(client.get("/v1/transactions").json()) == 1

    def test_import_garbage(self, client):
        resp = client.post("/v1/exchange", json={"payload": "{not json"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "malformed-message"

    def test_import_forged(self, client, alice, bob):
        tx = make_signed_tx(alice, bob.address, 1)
        tx.signature = make_signed_tx(alice, bob.address, 2).signature
        resp = client.post("/v1/exchange", json={"payload": serialize_payload(tx)})
        assert resp.status_code == 422
        assert resp.json()["code"] == "signature-invalid"

    def test_export_unknown(self, client):
        resp = client.get("/v1/exchange/" + "a" * 64)
        assert resp.status_code == 404
