"""
Verification API Tests

Tests for:
- POST /api/verify-single-address: charge on success, refund on failure,
  QuotaExceeded, skipped rows, evicted sessions
- GET /api/verify-single-address credit balance
- POST /api/public-single-address rate limit
- POST /api/check-access
"""

import asyncio

from credit_wallet.config import UNLIMITED

from conftest import GOOD_ADDRESS, BULK_CODE


async def _remaining(db, client_id):
    doc = await db.clients.find_one({"id": client_id})
    return doc["remainingCredits"]


class TestVerifySingleAddress:

    async def test_success_charges_one_credit(self, client, db, make_client, login_headers):
        account = await make_client(username="acme", remaining=10)
        headers = await login_headers("acme")

        resp = await client.post(
            "/api/verify-single-address",
            json={"address": GOOD_ADDRESS, "customerName": "ravi kumar"},
            headers=headers
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "Success"
        assert body["pin"] == "500092"
        assert body["remainingCredits"] == 9
        assert await _remaining(db, account["id"]) == 9

    async def test_external_failure_refunds(self, client, db, make_client, login_headers, fake_gemini):
        account = await make_client(username="acme", remaining=10)
        headers = await login_headers("acme")
        fake_gemini.fail_address = True

        resp = await client.post(
            "/api/verify-single-address",
            json={"address": GOOD_ADDRESS, "customerName": "ravi"},
            headers=headers
        )

        assert resp.status_code == 502
        body = resp.json()
        assert body["status"] == "Error"
        assert "not charged" in body["message"]
        assert await _remaining(db, account["id"]) == 10

    async def test_malformed_model_output_refunds(self, client, db, make_client, login_headers, fake_gemini):
        account = await make_client(username="acme", remaining=4)
        headers = await login_headers("acme")
        fake_gemini.raw_address_text = "no json here"

        resp = await client.post("/api/verify-single-address", json={"address": GOOD_ADDRESS}, headers=headers)

        assert resp.status_code == 502
        assert await _remaining(db, account["id"]) == 4

    async def test_quota_exceeded(self, client, db, make_client, login_headers, fake_gemini):
        account = await make_client(username="acme", remaining=0, initial=100)
        headers = await login_headers("acme")

        resp = await client.post("/api/verify-single-address", json={"address": GOOD_ADDRESS}, headers=headers)

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "QuotaExceeded"
        assert body["remainingCredits"] == 0
        assert fake_gemini.prompts == []
        assert await _remaining(db, account["id"]) == 0

    async def test_skipped_address_is_free(self, client, db, make_client, login_headers, fake_gemini):
        account = await make_client(username="acme", remaining=5)
        headers = await login_headers("acme")

        resp = await client.post(
            "/api/verify-single-address",
            json={"address": "reach me at ravi@example.com", "customerName": "Ravi"},
            headers=headers
        )

        body = resp.json()
        assert body["status"] == "Skipped"
        assert body["remainingCredits"] == 5
        assert fake_gemini.prompts == []
        assert await _remaining(db, account["id"]) == 5

    async def test_unlimited_account(self, client, db, make_client, login_headers):
        account = await make_client(username="acme", remaining=UNLIMITED, initial=UNLIMITED)
        headers = await login_headers("acme")

        resp = await client.post("/api/verify-single-address", json={"address": GOOD_ADDRESS}, headers=headers)

        assert resp.json()["remainingCredits"] == UNLIMITED
        assert await _remaining(db, account["id"]) == UNLIMITED

    async def test_evicted_session_is_not_charged(self, client, db, make_client, login_headers):
        account = await make_client(username="acme", remaining=5)
        old_headers = await login_headers("acme")
        await client.post("/api/client/login", json={"username": "acme", "password": "client-pass", "force": True})

        resp = await client.post("/api/verify-single-address", json={"address": GOOD_ADDRESS}, headers=old_headers)

        assert resp.status_code == 401
        assert await _remaining(db, account["id"]) == 5

    async def test_requires_login(self, client):
        resp = await client.post("/api/verify-single-address", json={"address": GOOD_ADDRESS})
        assert resp.status_code == 401

    async def test_concurrent_requests_never_overspend(self, client, db, make_client, login_headers):
        account = await make_client(username="acme", remaining=3)
        headers = await login_headers("acme")

        responses = await asyncio.gather(*[
            client.post("/api/verify-single-address", json={"address": GOOD_ADDRESS}, headers=headers)
            for _ in range(6)
        ])

        statuses = [r.json()["status"] for r in responses]
        assert statuses.count("Success") == 3
        assert statuses.count("QuotaExceeded") == 3
        assert await _remaining(db, account["id"]) == 0


class TestCreditBalance:

    async def test_get_balance(self, client, make_client, login_headers):
        await make_client(username="acme", remaining=8, initial=20)
        headers = await login_headers("acme")

        resp = await client.get("/api/verify-single-address", headers=headers)

        body = resp.json()
        assert body["remainingCredits"] == 8
        assert body["initialCredits"] == 20
        assert body["planName"] == "Standard_Monthly_10"


class TestPublicEndpoint:

    async def test_public_verification(self, client):
        resp = await client.post(
            "/api/public-single-address",
            json={"address": GOOD_ADDRESS, "customerName": "Ravi Kumar"}
        )

        assert resp.status_code == 200
        assert resp.json()["addressLine1"].endswith("INDIA")

    async def test_public_rate_limit(self, client):
        for _ in range(10):
            ok = await client.post("/api/public-single-address", json={"address": GOOD_ADDRESS})
            assert ok.status_code == 200

        blocked = await client.post("/api/public-single-address", json={"address": GOOD_ADDRESS})

        assert blocked.status_code == 429
        assert "Rate limit exceeded" in blocked.json()["detail"]

    async def test_public_numeric_fields_from_model(self, client, fake_gemini):
        fake_gemini.address_json["P.O."] = 500092
        fake_gemini.address_json["DIST."] = 42

        resp = await client.post("/api/public-single-address", json={"address": GOOD_ADDRESS})

        assert resp.status_code == 200
        assert resp.json()["status"] == "Success"

    async def test_public_failure_is_502(self, client, fake_gemini):
        fake_gemini.fail_address = True
        resp = await client.post("/api/public-single-address", json={"address": GOOD_ADDRESS})
        assert resp.status_code == 502


class TestCheckAccess:

    async def test_correct_code(self, client):
        resp = await client.post("/api/check-access", json={"code": BULK_CODE})
        assert resp.status_code == 200

    async def test_wrong_code(self, client):
        resp = await client.post("/api/check-access", json={"code": "nope"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Incorrect access code."
