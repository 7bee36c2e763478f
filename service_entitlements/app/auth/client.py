"""
Auth service client for Entitlements Service.
"""

from typing import Dict, Any

import httpx
from shared.logging import get_logger
from shared.errors import AuthenticationError, ExternalServiceError


class AuthClient:
    """Client for verifying bearer tokens with the Auth service."""

    def __init__(self, auth_service_url: str, timeout: float = 10.0):
        self.auth_service_url = auth_service_url.rstrip("/")
        self.timeout = timeout
        self.logger = get_logger("entitlements.auth_client")

    async def verify_token(self, token: str) -> Dict[str, Any]:
        """Verify a token and return the ``user_info`` of its holder."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.auth_service_url}/auth/verify",
                    json={"token": token}
                )
        except httpx.HTTPError as e:
            self.logger.error("Auth service HTTP error", error=str(e))
            raise ExternalServiceError(
                "auth",
                "Auth service unavailable",
                details={"http_error": str(e)}
            )

        if response.status_code != 200:
            raise AuthenticationError(
                f"Auth service error: {response.status_code}",
                details={"status_code": response.status_code}
            )

        result = response.json()
        if not result.get("valid"):
            self.logger.warning("Token validation failed", error=result.get("error"))
            raise AuthenticationError(
                "Invalid token",
                details={"error": result.get("error")}
            )

        user_info = result.get("user_info") or {}
        if not user_info.get("user_id"):
            raise AuthenticationError("Token carries no user")
        return user_info
