"""
Authentication settings

Secrets sourced from the deployment environment are collected once into an
explicit AuthSettings object and handed to the session manager and token
helpers, instead of being read ad hoc per call.
"""
import os
import logging
from typing import Optional

from pydantic import BaseModel

from credit_wallet.config import (
    SESSION_TOKEN_EXPIRES_SECONDS,
    ACTION_TOKEN_EXPIRES_SECONDS,
    ADMIN_TOKEN_EXPIRES_SECONDS,
)

logger = logging.getLogger(__name__)

DEV_JWT_SECRET = "smart-locator-secret-key-change-in-production"
JWT_ALGORITHM = "HS256"


class AuthSettings(BaseModel):
    jwt_secret: str
    action_token_secret: str
    admin_username: Optional[str] = None
    admin_password_hash: Optional[str] = None
    bulk_access_code: Optional[str] = None
    session_token_ttl: int = SESSION_TOKEN_EXPIRES_SECONDS
    action_token_ttl: int = ACTION_TOKEN_EXPIRES_SECONDS
    admin_token_ttl: int = ADMIN_TOKEN_EXPIRES_SECONDS
    algorithm: str = JWT_ALGORITHM


def load_auth_settings() -> AuthSettings:
    """Build AuthSettings from the environment."""
    jwt_secret = os.environ.get("JWT_SECRET")
    if not jwt_secret:
        logger.warning("JWT_SECRET is not set - using the development default")
        jwt_secret = DEV_JWT_SECRET

    return AuthSettings(
        jwt_secret=jwt_secret,
        action_token_secret=os.environ.get("ACTION_TOKEN_SECRET") or f"{jwt_secret}_action",
        admin_username=os.environ.get("ADMIN_USERNAME"),
        admin_password_hash=os.environ.get("ADMIN_PASSWORD_HASH"),
        bulk_access_code=os.environ.get("BULK_ACCESS_CODE"),
    )


_settings_instance = None


def get_auth_settings() -> AuthSettings:
    """Get or create the process-wide settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = load_auth_settings()
    return _settings_instance
