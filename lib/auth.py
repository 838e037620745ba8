"""
Identity provider integration.

Sessions live with the external identity provider; this service only
verifies the bearer tokens it issues and maps the user to their primary org.
"""
from typing import Optional
from uuid import UUID

from jose import JWTError, jwt

from lib.errors import InvalidState, Unauthorized
from lib.store import ReferralStore


class IdentityProvider:
    """Verifies provider-signed JWTs and resolves org membership"""

    def __init__(self, secret_key: str, algorithm: str, store: ReferralStore):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.store = store

    def authenticate(self, authorization: Optional[str]) -> str:
        """Return the user id carried by an `Authorization: Bearer` header"""
        if not authorization or not authorization.startswith("Bearer "):
            raise Unauthorized("Missing or invalid authorization header")

        token = authorization[len("Bearer "):]
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise Unauthorized("Token has expired")
        except JWTError:
            raise Unauthorized("Invalid token")

        user_id = payload.get("sub")
        if not user_id:
            raise Unauthorized("Invalid token")
        return str(user_id)

    async def primary_org(self, user_id: str) -> UUID:
        org_id = await self.store.get_primary_org_id(user_id)
        if org_id is None:
            raise InvalidState("No organization found")
        return org_id
