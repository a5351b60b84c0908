"""
Verification Guard - Credit gate around billable external calls

Enforces, for every paid address verification:
1. Reserve one credit (atomic, never below zero)
2. Run the external call, bounded by a timeout
3. Refund the credit if the call fails, times out or returns nothing usable
4. On success, re-read the balance so concurrent admin top-ups are reflected

IMPORTANT: This guard is the ONLY place where billable verification is gated.
There is no retry here; a retry would have to happen before reservation.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Any

from .config import RATE_LIMITS, UNLIMITED, ERROR_CODES, VERIFICATION_TIMEOUT_SECONDS
from .ledger_service import CreditLedger
from .models import GuardOutcome
from utils.errors import ExternalServiceError

logger = logging.getLogger(__name__)


class VerificationGuard:
    """
    Credit reservation protocol around a billable call.

    Usage:
        guard = VerificationGuard(db)
        outcome = await guard.run(client_id, lambda: verifier.verify(address, name))
        if outcome.status == "quota_exceeded":
            return {"status": "QuotaExceeded", ...}
        return {**outcome.result, "remainingCredits": outcome.remaining_credits}
    """

    def __init__(self, db, timeout_seconds: Optional[float] = None):
        self.db = db
        self.ledger = CreditLedger(db)
        self.timeout_seconds = timeout_seconds or VERIFICATION_TIMEOUT_SECONDS

    async def run(self, client_id: str, call: Callable[[], Awaitable[Any]]) -> GuardOutcome:
        """
        Reserve, call, refund-on-failure.

        Raises:
            ExternalServiceError: the call failed; the credit has already been refunded
        """
        reservation = await self.ledger.try_reserve(client_id)

        if not reservation.reserved:
            status = "account_disabled" if reservation.reason == "account_disabled" else "quota_exceeded"
            return GuardOutcome(status=status, remaining_credits=reservation.remaining_credits)

        try:
            result = await asyncio.wait_for(call(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(f"Billable call timed out after {self.timeout_seconds}s for client {client_id}")
            await self._refund(client_id, reservation.unlimited)
            raise ExternalServiceError(f"Verification timed out after {self.timeout_seconds:.0f} seconds")
        except ExternalServiceError:
            await self._refund(client_id, reservation.unlimited)
            raise
        except Exception as e:
            logger.error(f"Billable call failed for client {client_id}: {e}")
            await self._refund(client_id, reservation.unlimited)
            raise ExternalServiceError(ERROR_CODES["SERVICE_FAILURE"]) from e

        if not result:
            await self._refund(client_id, reservation.unlimited)
            raise ExternalServiceError("Verification service returned no usable result")

        if reservation.unlimited:
            remaining = UNLIMITED
        else:
            balance = await self.ledger.get_balance(client_id)
            remaining = balance.remaining_credits

        return GuardOutcome(status="success", result=result, remaining_credits=remaining)

    async def _refund(self, client_id: str, unlimited: bool):
        if unlimited:
            return
        await self.ledger.refund(client_id)


class RateLimiter:
    """
    In-memory sliding-window rate limiter keyed by caller (IP for the public endpoint).

    Process-local: each instance enforces its own window. Keys with no call
    inside the window are dropped, at most once per window for the whole table.
    """

    def __init__(self, max_calls: Optional[int] = None, window_seconds: Optional[int] = None):
        self.max_calls = max_calls or RATE_LIMITS["public_calls_per_minute"]
        self.window_seconds = window_seconds or RATE_LIMITS["window_seconds"]
        # Format: {key: [timestamp, ...]}
        self._calls: Dict[str, List[float]] = {}
        self._last_sweep = time.time()
        self._lock = asyncio.Lock()

    def _sweep(self, now: float):
        stale = [key for key, stamps in self._calls.items() if not stamps or now - stamps[-1] >= self.window_seconds]
        for key in stale:
            del self._calls[key]
        if stale:
            logger.debug(f"Rate limiter dropped {len(stale)} idle keys")
        self._last_sweep = now

    async def hit(self, key: str) -> Tuple[bool, str]:
        """Record a call for key if within limits."""
        async with self._lock:
            now = time.time()
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(now)

            recent = [ts for ts in self._calls.get(key, []) if now - ts < self.window_seconds]

            if len(recent) >= self.max_calls:
                self._calls[key] = recent
                wait_time = int(self.window_seconds - (now - recent[0])) + 1
                return False, f"Rate limit exceeded. Please wait {wait_time} seconds."

            recent.append(now)
            self._calls[key] = recent
            return True, ""
