"""Bearer-token auth for the counseling API.

The calling frontend authenticates its users and forwards the user id (and
display name) in headers alongside a shared API token. The role is never
trusted from the request: it is resolved from the profile tables.
"""

from __future__ import annotations

import secrets

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ekklesia.config import settings
from ekklesia.db.store import record_store
from ekklesia.schemas.counseling import Actor
from ekklesia.security.identity import IdentityProvider

bearer = HTTPBearer(auto_error=False)


def get_identity_provider() -> IdentityProvider:
    return IdentityProvider(record_store)


async def verify_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),  # noqa: B008
) -> None:
    """FastAPI dependency — verify the shared API token. Raises 401/503."""
    expected = settings.security.api_token
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="API_TOKEN not configured",
        )
    if credentials is None or not secrets.compare_digest(
        credentials.credentials.encode("utf-8"),
        expected.encode("utf-8"),
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def current_actor(
    _: None = Depends(verify_token),  # noqa: B008
    x_user_id: str = Header(...),
    x_user_name: str | None = Header(None),
    identity: IdentityProvider = Depends(get_identity_provider),  # noqa: B008
) -> Actor:
    """FastAPI dependency — the acting user with a role resolved server-side."""
    return await identity.resolve(x_user_id, x_user_name)
