"""Test suite for quota checks and the atomic usage upsert."""

from datetime import date, timedelta

import pytest

from businessgpt.exceptions import QuotaExceeded
from businessgpt.quota import check_quota, get_today_chat_count, get_usage_info, record_usage

from helpers import set_usage, today_usage


class TestReadQuota:
    """Reading today's usage."""

    @pytest.mark.asyncio
    async def test_missing_row_counts_as_zero(self, session_factory, user) -> None:
        async with session_factory() as db:
            assert await get_today_chat_count(db, user.id) == 0
            assert await check_quota(db, user.id, limit=50) == 0

    @pytest.mark.asyncio
    async def test_check_quota_below_limit_returns_used(self, session_factory, user) -> None:
        await set_usage(session_factory, user.id, chat_count=49)

        async with session_factory() as db:
            assert await check_quota(db, user.id, limit=50) == 49

    @pytest.mark.asyncio
    async def test_check_quota_at_limit_raises(self, session_factory, user) -> None:
        await set_usage(session_factory, user.id, chat_count=50)

        async with session_factory() as db:
            with pytest.raises(QuotaExceeded) as exc_info:
                await check_quota(db, user.id, limit=50)

        assert exc_info.value.used == 50
        assert "50回" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_yesterday_does_not_count(self, session_factory, user) -> None:
        async with session_factory() as db:
            await record_usage(db, user.id, tokens=5, limit=50, today=date.today() - timedelta(days=1))

        async with session_factory() as db:
            assert await get_today_chat_count(db, user.id) == 0

    @pytest.mark.asyncio
    async def test_usage_info(self, session_factory, user) -> None:
        await set_usage(session_factory, user.id, chat_count=12, tokens_used=3400)

        async with session_factory() as db:
            info = await get_usage_info(db, user.id, limit=50)

        assert info == {"used": 12, "limit": 50, "remaining": 38, "tokens_used": 3400}

    @pytest.mark.asyncio
    async def test_usage_info_without_row(self, session_factory, user) -> None:
        async with session_factory() as db:
            info = await get_usage_info(db, user.id, limit=50)

        assert info == {"used": 0, "limit": 50, "remaining": 50, "tokens_used": 0}


class TestRecordUsage:
    """Conditional insert-or-increment."""

    @pytest.mark.asyncio
    async def test_first_chat_inserts_row(self, session_factory, user) -> None:
        async with session_factory() as db:
            new_count = await record_usage(db, user.id, tokens=120, limit=50)

        assert new_count == 1
        usage = await today_usage(session_factory, user.id)
        assert usage.chat_count == 1
        assert usage.tokens_used == 120

    @pytest.mark.asyncio
    async def test_existing_row_is_incremented(self, session_factory, user) -> None:
        await set_usage(session_factory, user.id, chat_count=3, tokens_used=300)

        async with session_factory() as db:
            new_count = await record_usage(db, user.id, tokens=50, limit=50)

        assert new_count == 4
        usage = await today_usage(session_factory, user.id)
        assert usage.chat_count == 4
        assert usage.tokens_used == 350

    @pytest.mark.asyncio
    async def test_at_limit_writes_nothing(self, session_factory, user) -> None:
        await set_usage(session_factory, user.id, chat_count=50, tokens_used=900)

        async with session_factory() as db:
            new_count = await record_usage(db, user.id, tokens=50, limit=50)

        assert new_count is None
        usage = await today_usage(session_factory, user.id)
        assert usage.chat_count == 50
        assert usage.tokens_used == 900

    @pytest.mark.asyncio
    async def test_count_stops_at_limit(self, session_factory, user) -> None:
        results = []
        for _ in range(5):
            async with session_factory() as db:
                results.append(await record_usage(db, user.id, tokens=1, limit=3))

        assert results == [1, 2, 3, None, None]
        usage = await today_usage(session_factory, user.id)
        assert usage.chat_count == 3
        assert usage.tokens_used == 3
