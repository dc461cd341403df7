"""Identity provider — resolves the acting user's role from the profile tables.

A leadership profile wins; otherwise a counselor profile makes the user a
Conselheiro; anyone else is a Membro.
"""

from __future__ import annotations

import logging
from typing import Any

from ekklesia.models.enums import UserRole
from ekklesia.schemas.counseling import Actor

logger = logging.getLogger(__name__)

LEADERS_TABLE = "pastors_and_leaders"
COUNSELORS_TABLE = "counselors"


class IdentityProvider:
    """Builds an `Actor` for an authenticated user id."""

    def __init__(self, store: Any) -> None:
        self._store = store

    async def resolve(self, user_id: str, name: str | None = None) -> Actor:
        """Resolve `{id, role, name}` for a user.

        Args:
            user_id: Authenticated user id (profile rows share it).
            name: Display name from the auth token, used when no profile has one.

        Returns:
            The acting user, scoped to the church of the profile found.
        """
        leader = await self._store.get(LEADERS_TABLE, user_id)
        if leader is not None:
            try:
                return Actor(
                    id=user_id,
                    role=UserRole(leader.get("role")),
                    name=leader.get("name") or name or user_id,
                    church_id=_as_str(leader.get("church_id")),
                )
            except ValueError:
                logger.warning("Leader profile %s has unknown role %r", user_id, leader.get("role"))

        counselor = await self._store.get(COUNSELORS_TABLE, user_id)
        if counselor is not None:
            return Actor(
                id=user_id,
                role=UserRole.COUNSELOR,
                name=counselor.get("name") or name or user_id,
                church_id=_as_str(counselor.get("church_id")),
            )

        return Actor(id=user_id, role=UserRole.MEMBER, name=name or user_id)


def _as_str(value: Any) -> str | None:
    return str(value) if value is not None else None
