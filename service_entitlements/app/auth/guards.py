"""
Request authentication and authorization guards.

The caller's identity comes from the Auth service; the admin check reads the
caller's tier from role storage, never from token claims.
"""

from typing import Optional
from dataclasses import dataclass

from shared.logging import get_logger, set_user_context
from shared.errors import AuthenticationError, AuthorizationError, NotFoundError
from ..tiers.resolver import is_admin_tier
from ..persistence.ports import EntitlementsStore
from .client import AuthClient


@dataclass
class Caller:
    user_id: str
    role: Optional[str] = None
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return is_admin_tier(self.role)


def bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthenticationError("Missing authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Invalid authorization header")
    return token.strip()


class RequestAuthenticator:
    """Resolves the caller of a request and enforces role requirements."""

    def __init__(self, auth_client: AuthClient, store: EntitlementsStore):
        self.auth_client = auth_client
        self.store = store
        self.logger = get_logger("entitlements.auth")

    async def authenticate(self, authorization: Optional[str]) -> Caller:
        user_info = await self.auth_client.verify_token(bearer_token(authorization))
        user_id = str(user_info["user_id"])
        role = await self.store.get_role(user_id)
        set_user_context(user_id=user_id, role=role)
        return Caller(user_id=user_id, role=role, email=user_info.get("email"))

    async def require_admin(self, authorization: Optional[str]) -> Caller:
        caller = await self.authenticate(authorization)
        if not caller.is_admin:
            self.logger.warning("Admin access denied", user_id=caller.user_id, role=caller.role)
            raise AuthorizationError("Admin access required")
        return caller

    async def require_company_manager(self, authorization: Optional[str], company_id: str) -> Caller:
        """Company owner or platform admin."""
        caller = await self.authenticate(authorization)
        if caller.is_admin:
            return caller

        company = await self.store.get_company(company_id)
        if company is None:
            raise NotFoundError("Company not found", details={"company_id": company_id})
        if company.owner_id != caller.user_id:
            self.logger.warning("Company access denied", user_id=caller.user_id, company_id=company_id)
            raise AuthorizationError("Only the company owner or an admin can manage members")
        set_user_context(user_id=caller.user_id, company_id=company_id, role=caller.role)
        return caller
