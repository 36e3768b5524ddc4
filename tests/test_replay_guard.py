"""
Tests for webhook replay protection.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from app.services.replay_guard import (
    InMemoryReplayGuard,
    RedisReplayGuard,
    idempotency_key,
)


class TestIdempotencyKey:
    """Tests for idempotency_key."""

    def test_request_id_wins(self):
        """The request id is the key when present."""
        assert idempotency_key("req-1", "payment", "123") == "req-1"

    def test_falls_back_to_topic_and_resource(self):
        """Without a request id the key is topic plus resource id."""
        assert idempotency_key(None, "payment", "123") == "payment-123"
        assert idempotency_key("", "merchant_order", "77") == "merchant_order-77"


class TestInMemoryReplayGuard:
    """Tests for the process-local guard."""

    @pytest.mark.asyncio
    async def test_first_claim_wins(self, replay_guard):
        """Only the first claim of a key succeeds."""
        assert await replay_guard.check_and_mark("req-1") is True
        assert await replay_guard.check_and_mark("req-1") is False

    @pytest.mark.asyncio
    async def test_distinct_keys_independent(self, replay_guard):
        """Claims on different keys do not interfere."""
        assert await replay_guard.check_and_mark("req-1")
        assert await replay_guard.check_and_mark("req-2")

    @pytest.mark.asyncio
    async def test_key_expires_after_ttl(self, replay_guard, clock):
        """A key can be claimed again once its TTL has passed."""
        await replay_guard.check_and_mark("req-1")
        clock.advance(299)
        assert not await replay_guard.should_process("req-1")
        clock.advance(1)
        assert await replay_guard.should_process("req-1")
        assert await replay_guard.check_and_mark("req-1")

    @pytest.mark.asyncio
    async def test_expired_entries_purged(self, replay_guard, clock):
        """Expired keys are dropped on the next access."""
        await replay_guard.check_and_mark("a")
        await replay_guard.check_and_mark("b")
        clock.advance(301)
        await replay_guard.check_and_mark("c")
        assert len(replay_guard) == 1

    @pytest.mark.asyncio
    async def test_release_allows_retry(self, replay_guard):
        """A released key can be claimed again at once."""
        await replay_guard.check_and_mark("req-1")
        await replay_guard.release("req-1")
        assert await replay_guard.check_and_mark("req-1")

    @pytest.mark.asyncio
    async def test_mark_processed_blocks(self, replay_guard):
        """mark_processed makes should_process false."""
        await replay_guard.mark_processed("req-1")
        assert not await replay_guard.should_process("req-1")

    @pytest.mark.asyncio
    async def test_concurrent_claims_single_winner(self, clock):
        """Simultaneous claims of one key yield exactly one winner."""
        guard = InMemoryReplayGuard(ttl_seconds=300, clock=clock)
        results = await asyncio.gather(*(guard.check_and_mark("req-1") for _ in range(20)))
        assert results.count(True) == 1


class TestRedisReplayGuard:
    """Tests for the Redis-backed guard."""

    @pytest.mark.asyncio
    async def test_claim_uses_set_nx_ex(self):
        """Claiming is a single SET NX EX."""
        redis = AsyncMock()
        redis.set.return_value = True
        guard = RedisReplayGuard(redis, ttl_seconds=300)

        assert await guard.check_and_mark("req-1") is True
        redis.set.assert_awaited_once_with("fotos:webhook:req-1", "1", nx=True, ex=300)

    @pytest.mark.asyncio
    async def test_existing_key_not_claimed(self):
        """A key Redis already holds is not claimed."""
        redis = AsyncMock()
        redis.set.return_value = None
        guard = RedisReplayGuard(redis, ttl_seconds=300)

        assert await guard.check_and_mark("req-1") is False

    @pytest.mark.asyncio
    async def test_should_process_and_release(self):
        """Lookup uses EXISTS and release deletes the key."""
        redis = AsyncMock()
        redis.exists.return_value = 1
        guard = RedisReplayGuard(redis, ttl_seconds=60)

        assert await guard.should_process("req-1") is False
        await guard.release("req-1")
        redis.delete.assert_awaited_once_with("fotos:webhook:req-1")
