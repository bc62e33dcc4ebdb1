"""
Admin API Key Authentication

Validates admin API keys for principal administration endpoints.
"""

import hmac

from fastapi import Header

from config import ApplicationConfig
from src.api.error import raise_for_error
from src.app.errors import AuthErrorCode, auth_error


async def verify_admin_api_key(x_admin_api_key: str = Header(None)):
    """
    Verify admin API key from X-Admin-API-Key header.

    Service-to-service auth, separate from access tokens.

    Raises:
        ClientError: 401 ADMIN_KEY_INVALID if the key is missing or wrong
    """
    if not x_admin_api_key:
        raise_for_error(
            auth_error(AuthErrorCode.ADMIN_KEY_INVALID, "Admin API key required")
        )

    # Header values may carry any latin-1 text; compare bytes
    if not hmac.compare_digest(
        x_admin_api_key.encode(), ApplicationConfig.ADMIN_API_KEY.encode()
    ):
        raise_for_error(auth_error(AuthErrorCode.ADMIN_KEY_INVALID, "Invalid admin API key"))

    return True
