"""Tests for the lock manager."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from repo_chat.repositories.lock import LockManager

RID = "github:acme:widgets"


def granting_client():
    """Client whose claim query always succeeds with the caller's token."""
    client = MagicMock()

    async def execute_write(query, params):
        if "RETURN l.token" in query:
            return [{"token": params["token"]}]
        return [{"released": 1}]

    client.execute_write = AsyncMock(side_effect=execute_write)
    return client


class TestAcquire:
    @pytest.mark.asyncio
    async def test_acquired_when_token_is_ours(self):
        client = granting_client()
        manager = LockManager(client, clock=lambda: 1000.0, holder="test")

        lease = await manager.acquire(RID, ttl_seconds=60)

        assert lease.acquired
        assert lease.token
        assert lease.expires_at == 1060.0
        _, params = client.execute_write.call_args.args
        assert params["now"] == 1000.0
        assert params["expires_at"] == 1060.0
        assert params["holder"] == "test"

    @pytest.mark.asyncio
    async def test_claim_only_when_expired(self):
        client = granting_client()
        manager = LockManager(client, clock=lambda: 1000.0)

        await manager.acquire(RID, ttl_seconds=60)

        query, _ = client.execute_write.call_args.args
        assert "MERGE" in query
        assert "WHERE l.expires_at <= $now" in query

    @pytest.mark.asyncio
    async def test_not_acquired_when_live_lock_exists(self):
        client = MagicMock()
        client.execute_write = AsyncMock(return_value=[])
        manager = LockManager(client, clock=lambda: 1000.0)

        lease = await manager.acquire(RID, ttl_seconds=60)

        assert not lease.acquired
        assert lease.token is None

    @pytest.mark.asyncio
    async def test_not_acquired_when_other_token_returned(self):
        client = MagicMock()
        client.execute_write = AsyncMock(return_value=[{"token": "someone-else"}])
        manager = LockManager(client)

        lease = await manager.acquire(RID, ttl_seconds=60)
        assert not lease.acquired

    @pytest.mark.asyncio
    async def test_tokens_are_unique(self):
        manager = LockManager(granting_client())
        first = await manager.acquire(RID, ttl_seconds=60)
        second = await manager.acquire(RID, ttl_seconds=60)
        assert first.token != second.token

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ttl", [0, -5])
    async def test_rejects_non_positive_ttl(self, ttl):
        manager = LockManager(granting_client())
        with pytest.raises(ValueError):
            await manager.acquire(RID, ttl_seconds=ttl)


class TestRelease:
    @pytest.mark.asyncio
    async def test_release_with_token_matches_token(self):
        client = granting_client()
        manager = LockManager(client)

        await manager.release(RID, token="abc")

        query, params = client.execute_write.call_args.args
        assert "token: $token" in query
        assert "DELETE l" in query
        assert params == {"repository_id": RID, "token": "abc"}

    @pytest.mark.asyncio
    async def test_release_without_token_is_unconditional(self):
        client = granting_client()
        manager = LockManager(client)

        await manager.release(RID)

        query, _ = client.execute_write.call_args.args
        assert "token: $token" not in query

    @pytest.mark.asyncio
    async def test_release_of_missing_lock_is_noop(self):
        client = MagicMock()
        client.execute_write = AsyncMock(return_value=[{"released": 0}])
        manager = LockManager(client)

        await manager.release(RID, token="gone")
        await manager.release(RID, token="gone")

        assert client.execute_write.await_count == 2


class TestLeaseSemantics:
    """Lease behaviour shared by every lock store, checked on the in-memory one."""

    @pytest.mark.asyncio
    async def test_second_acquire_fails_until_expiry(self, lock_store, clock):
        first = await lock_store.acquire(RID, ttl_seconds=30)
        assert first.acquired
        assert not (await lock_store.acquire(RID, ttl_seconds=30)).acquired

        clock.advance(31)
        assert (await lock_store.acquire(RID, ttl_seconds=30)).acquired

    @pytest.mark.asyncio
    async def test_stale_token_cannot_release_newer_lease(self, lock_store, clock):
        stale = await lock_store.acquire(RID, ttl_seconds=30)
        clock.advance(31)
        fresh = await lock_store.acquire(RID, ttl_seconds=30)

        await lock_store.release(RID, stale.token)
        assert lock_store.is_locked(RID)

        await lock_store.release(RID, fresh.token)
        assert not lock_store.is_locked(RID)
