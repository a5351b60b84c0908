"""
Verification Guard Tests

Reserve -> call -> refund-on-failure, and the public rate limiter.
"""

import asyncio

import pytest

from credit_wallet.config import UNLIMITED
from credit_wallet.guard import VerificationGuard, RateLimiter
from utils.errors import ExternalServiceError


async def _remaining(db, client_id):
    doc = await db.clients.find_one({"id": client_id})
    return doc["remainingCredits"]


class TestGuardRun:

    async def test_success_charges_exactly_one_credit(self, db, make_client):
        client = await make_client(remaining=3)
        guard = VerificationGuard(db)

        async def call():
            return {"status": "Success"}

        outcome = await guard.run(client["id"], call)

        assert outcome.succeeded
        assert outcome.result == {"status": "Success"}
        assert outcome.remaining_credits == 2
        assert await _remaining(db, client["id"]) == 2

    async def test_success_reflects_concurrent_top_up(self, db, make_client):
        client = await make_client(remaining=1)
        guard = VerificationGuard(db)

        async def call():
            # Admin adds credits while the external call is in flight
            await guard.ledger.admin_top_up(client["id"], 10)
            return {"status": "Success"}

        outcome = await guard.run(client["id"], call)

        assert outcome.remaining_credits == 10

    async def test_failure_refunds_and_raises(self, db, make_client):
        client = await make_client(remaining=3)
        guard = VerificationGuard(db)

        async def call():
            raise ExternalServiceError("Gemini API error: boom")

        with pytest.raises(ExternalServiceError):
            await guard.run(client["id"], call)

        assert await _remaining(db, client["id"]) == 3

    async def test_unexpected_error_is_wrapped_and_refunded(self, db, make_client):
        client = await make_client(remaining=3)
        guard = VerificationGuard(db)

        async def call():
            raise RuntimeError("socket closed")

        with pytest.raises(ExternalServiceError):
            await guard.run(client["id"], call)

        assert await _remaining(db, client["id"]) == 3

    async def test_timeout_refunds(self, db, make_client):
        client = await make_client(remaining=1)
        guard = VerificationGuard(db, timeout_seconds=0.05)

        async def call():
            await asyncio.sleep(1)
            return {"status": "Success"}

        with pytest.raises(ExternalServiceError) as exc_info:
            await guard.run(client["id"], call)

        assert "timed out" in exc_info.value.reason
        assert await _remaining(db, client["id"]) == 1

    async def test_empty_result_refunds(self, db, make_client):
        client = await make_client(remaining=2)
        guard = VerificationGuard(db)

        async def call():
            return None

        with pytest.raises(ExternalServiceError):
            await guard.run(client["id"], call)

        assert await _remaining(db, client["id"]) == 2

    async def test_quota_exceeded_never_calls(self, db, make_client):
        client = await make_client(remaining=0)
        guard = VerificationGuard(db)
        calls = []

        async def call():
            calls.append(1)
            return {"status": "Success"}

        outcome = await guard.run(client["id"], call)

        assert outcome.status == "quota_exceeded"
        assert outcome.remaining_credits == 0
        assert calls == []

    async def test_disabled_account_never_calls(self, db, make_client):
        client = await make_client(remaining=5, is_active=False)
        guard = VerificationGuard(db)

        async def call():
            raise AssertionError("should not be called")

        outcome = await guard.run(client["id"], call)

        assert outcome.status == "account_disabled"

    async def test_unlimited_failure_leaves_sentinel(self, db, make_client):
        client = await make_client(remaining=UNLIMITED)
        guard = VerificationGuard(db)

        async def call():
            raise ExternalServiceError("down")

        with pytest.raises(ExternalServiceError):
            await guard.run(client["id"], call)

        assert await _remaining(db, client["id"]) == UNLIMITED

    async def test_unlimited_success(self, db, make_client):
        client = await make_client(remaining=UNLIMITED)
        guard = VerificationGuard(db)

        async def call():
            return {"status": "Success"}

        outcome = await guard.run(client["id"], call)

        assert outcome.remaining_credits == UNLIMITED


class TestRateLimiter:

    async def test_allows_up_to_limit(self):
        limiter = RateLimiter(max_calls=3, window_seconds=60)

        results = [await limiter.hit("1.2.3.4") for _ in range(3)]

        assert all(allowed for allowed, _ in results)

    async def test_blocks_over_limit(self):
        limiter = RateLimiter(max_calls=2, window_seconds=60)
        await limiter.hit("1.2.3.4")
        await limiter.hit("1.2.3.4")

        allowed, message = await limiter.hit("1.2.3.4")

        assert not allowed
        assert "Rate limit exceeded" in message

    async def test_keys_are_independent(self):
        limiter = RateLimiter(max_calls=1, window_seconds=60)
        await limiter.hit("1.1.1.1")

        allowed, _ = await limiter.hit("2.2.2.2")

        assert allowed

    async def test_idle_keys_are_dropped_after_window(self, monkeypatch):
        clock = {"now": 1_000_000.0}
        monkeypatch.setattr("credit_wallet.guard.time.time", lambda: clock["now"])
        limiter = RateLimiter(max_calls=10, window_seconds=60)
        for i in range(5000):
            await limiter.hit(f"10.0.{i // 256}.{i % 256}")
        assert len(limiter._calls) == 5000

        clock["now"] += 3600
        allowed, _ = await limiter.hit("192.168.1.1")

        assert allowed
        assert list(limiter._calls) == ["192.168.1.1"]

    async def test_active_key_survives_sweep(self, monkeypatch):
        clock = {"now": 1_000_000.0}
        monkeypatch.setattr("credit_wallet.guard.time.time", lambda: clock["now"])
        limiter = RateLimiter(max_calls=2, window_seconds=60)
        await limiter.hit("1.1.1.1")
        clock["now"] += 59
        await limiter.hit("1.1.1.1")

        clock["now"] += 2
        allowed, _ = await limiter.hit("2.2.2.2")

        assert allowed
        assert set(limiter._calls) == {"1.1.1.1", "2.2.2.2"}
