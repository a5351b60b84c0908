"""
Credit Wallet Configuration and Constants

Sentinels, token lifetimes, timeouts and rate limits are defined here.
"""
import os

# ==================== CREDIT SENTINEL ====================
# Stored in remainingCredits / initialCredits instead of a number
UNLIMITED = "Unlimited"

# ==================== TOKEN LIFETIMES (SECONDS) ====================
SESSION_TOKEN_EXPIRES_SECONDS = 7 * 24 * 60 * 60   # 7 days
ACTION_TOKEN_EXPIRES_SECONDS = 300                   # 5 minutes
ADMIN_TOKEN_EXPIRES_SECONDS = 60 * 60                # 1 hour

# Purpose claim carried by action tokens; nothing else accepts it
ACTION_TOKEN_PURPOSE = "terminate_session"

# ==================== EXTERNAL CALL BOUNDS ====================
VERIFICATION_TIMEOUT_SECONDS = float(os.environ.get("VERIFICATION_TIMEOUT_SECONDS", "60"))

# ==================== RATE LIMITS (PUBLIC ENDPOINT) ====================
RATE_LIMITS = {
    "public_calls_per_minute": 10,
    "window_seconds": 60
}

# ==================== BULK JOBS ====================
BULK_LIMITS = {
    "max_active_jobs": 1,
    "progress_every_rows": 10
}

# ==================== ERROR CODES ====================
ERROR_CODES = {
    "QUOTA_EXCEEDED": "You have exhausted your verification credits.",
    "ACCOUNT_DISABLED": "Account disabled. Contact administrator.",
    "INVALID_CREDENTIALS": "Invalid credentials.",
    "SESSION_CONFLICT": "User already logged in on another device.",
    "AUTH_REQUIRED": "Authentication required.",
    "SERVICE_FAILURE": "Address verification service failed. Your credit was not charged.",
    "RATE_LIMIT": "Rate limit exceeded. Please wait before making another request."
}

# ==================== SYSTEM MESSAGES ====================
SYSTEM_SENDER_ID = "admin"

SYSTEM_MESSAGES = {
    "welcome": "Welcome to Smart Locator!",
    "credits_added": "Credits Added",
    "credits_adjusted": "Credits Adjusted",
    "account_disabled": "Account Disabled",
    "account_enabled": "Account Re-Enabled",
    "plan_updated": "Plan Updated"
}
