"""Tests for role resolution from profile tables."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from ekklesia.db.store import RecordStore
from ekklesia.models.enums import UserRole
from ekklesia.security.identity import IdentityProvider


class TestIdentityProvider:
    @pytest.mark.asyncio()
    async def test_leader_role(self, store):
        store.seed("pastors_and_leaders", {"id": "u1", "church_id": "ch1", "name": "Pr. Davi", "role": "Pastor"})

        actor = await IdentityProvider(store).resolve("u1")

        assert actor.role is UserRole.PASTOR
        assert actor.name == "Pr. Davi"
        assert actor.church_id == "ch1"
        assert actor.is_leadership

    @pytest.mark.asyncio()
    async def test_counselor(self, store):
        store.seed("counselors", {"id": "u2", "church_id": "ch1", "name": "Bruno"})

        actor = await IdentityProvider(store).resolve("u2")

        assert actor.role is UserRole.COUNSELOR
        assert not actor.is_leadership

    @pytest.mark.asyncio()
    async def test_unknown_leader_role_falls_through(self, store):
        store.seed("pastors_and_leaders", {"id": "u3", "church_id": "ch1", "name": "X", "role": "Diácono"})
        store.seed("counselors", {"id": "u3", "church_id": "ch1", "name": "X"})

        actor = await IdentityProvider(store).resolve("u3")

        assert actor.role is UserRole.COUNSELOR

    @pytest.mark.asyncio()
    async def test_member_by_default(self, store):
        actor = await IdentityProvider(store).resolve("u4", "Ana")

        assert actor.role is UserRole.MEMBER
        assert actor.name == "Ana"
        assert actor.church_id is None

    @pytest.mark.asyncio()
    async def test_malformed_user_id_is_member(self, pg_session_factory):
        store = RecordStore(pg_session_factory, AsyncMock())

        actor = await IdentityProvider(store).resolve("not-a-uuid", "Ana")

        assert actor.role is UserRole.MEMBER
        assert actor.church_id is None
