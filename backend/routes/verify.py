"""
Address verification routes

- /verify-single-address: billable, one credit per verified address
- /public-single-address: free, rate limited per IP
- /check-access: shared bulk-access code gate
"""
from fastapi import APIRouter, Depends, HTTPException, Request
import hmac
import logging

from database import get_db
from credit_wallet.config import ERROR_CODES
from credit_wallet.guard import VerificationGuard, RateLimiter
from models.schemas import AddressRequest, AccessCodeRequest
from services.address_verifier import AddressVerifier, get_address_verifier
from utils.auth import get_current_client
from utils.settings import get_auth_settings

logger = logging.getLogger(__name__)

verify_router = APIRouter(tags=["Verification"])

public_rate_limiter = RateLimiter()


def get_verification_guard(db=Depends(get_db)) -> VerificationGuard:
    """Dependency to get the credit guard for the request database"""
    return VerificationGuard(db)


def get_public_rate_limiter() -> RateLimiter:
    return public_rate_limiter


@verify_router.get("/verify-single-address")
async def get_credits(
    client: dict = Depends(get_current_client),
    guard: VerificationGuard = Depends(get_verification_guard)
):
    """Current credit balance for the dashboard"""
    balance = await guard.ledger.get_balance(client["id"])
    return {
        "status": "Success",
        "remainingCredits": balance.remaining_credits,
        "initialCredits": balance.initial_credits if balance.initial_credits is not None else 0,
        "planName": balance.plan_name
    }


@verify_router.post("/verify-single-address")
async def verify_single_address(
    data: AddressRequest,
    client: dict = Depends(get_current_client),
    guard: VerificationGuard = Depends(get_verification_guard),
    verifier: AddressVerifier = Depends(get_address_verifier)
):
    """
    Verify one address for one credit.

    Emails and testing orders are skipped without charge. When the external
    call fails the credit is refunded and the request fails with 502.
    """
    client_id = client["id"]

    skipped = verifier.precheck(data.address, data.customerName)
    if skipped:
        balance = await guard.ledger.get_balance(client_id)
        return {**skipped, "remainingCredits": balance.remaining_credits}

    outcome = await guard.run(client_id, lambda: verifier.verify(data.address, data.customerName))

    if outcome.status == "account_disabled":
        raise HTTPException(status_code=403, detail=ERROR_CODES["ACCOUNT_DISABLED"])

    if outcome.status == "quota_exceeded":
        return {
            "status": "QuotaExceeded",
            "message": ERROR_CODES["QUOTA_EXCEEDED"],
            "remainingCredits": outcome.remaining_credits if outcome.remaining_credits is not None else 0
        }

    return {**outcome.result, "remainingCredits": outcome.remaining_credits}


@verify_router.post("/public-single-address")
async def public_single_address(
    data: AddressRequest,
    request: Request,
    verifier: AddressVerifier = Depends(get_address_verifier),
    limiter: RateLimiter = Depends(get_public_rate_limiter)
):
    """Free verification for the public page; no login, no credits"""
    caller = request.client.host if request.client else "unknown"
    allowed, message = await limiter.hit(caller)
    if not allowed:
        raise HTTPException(status_code=429, detail=message)

    skipped = verifier.precheck(data.address, data.customerName)
    if skipped:
        return skipped

    return await verifier.verify_public(data.address, data.customerName)


@verify_router.post("/check-access")
async def check_access(data: AccessCodeRequest):
    expected = get_auth_settings().bulk_access_code
    if not expected:
        logger.error("BULK_ACCESS_CODE environment variable is not set.")
        raise HTTPException(status_code=500, detail="Server configuration error.")

    if not hmac.compare_digest(data.code.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=401, detail="Incorrect access code.")
    return {"status": "Success", "message": "Access granted."}
