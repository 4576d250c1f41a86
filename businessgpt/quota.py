"""
Quota Management
================
Daily usage check and recording for signed-in users.

Quota:
- Registered users: 50 chats/day (beta period)

The pre-flight check is a plain read. The authoritative guard is
record_usage(): a single INSERT ... ON CONFLICT DO UPDATE ... WHERE
chat_count < limit, so concurrent turns cannot push a user past the limit.
"""

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .database import dialect_insert
from .exceptions import QuotaExceeded
from .models.user_usage import UserUsage, DAILY_CHAT_LIMIT


async def get_today_chat_count(
    db: AsyncSession,
    user_id: int,
    today: Optional[date] = None
) -> int:
    """Today's chat count for a user; a missing row counts as zero."""
    stmt = select(UserUsage.chat_count).where(
        UserUsage.user_id == user_id,
        UserUsage.usage_date == (today or date.today())
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none() or 0


async def check_quota(
    db: AsyncSession,
    user_id: int,
    limit: int = DAILY_CHAT_LIMIT,
    today: Optional[date] = None
) -> int:
    """
    Check if the user has remaining quota.

    Returns:
        Chats used today

    Raises:
        QuotaExceeded if the limit is already reached
    """
    used = await get_today_chat_count(db, user_id, today)
    if used >= limit:
        raise QuotaExceeded(used=used, limit=limit)
    return used


async def record_usage(
    db: AsyncSession,
    user_id: int,
    tokens: int = 0,
    limit: int = DAILY_CHAT_LIMIT,
    today: Optional[date] = None
) -> Optional[int]:
    """
    Atomically count one chat (and its tokens) against today's quota.

    Inserts the (user, date) row with chat_count=1 when absent, otherwise
    increments it, but only while chat_count < limit. Commits on success.

    Returns:
        The new chat count, or None if the limit had already been reached
        (nothing is written in that case)
    """
    now = datetime.now(timezone.utc)
    insert = dialect_insert(db)

    stmt = insert(UserUsage).values(
        user_id=user_id,
        usage_date=today or date.today(),
        chat_count=1,
        tokens_used=tokens,
        created_at=now,
        updated_at=now
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[UserUsage.user_id, UserUsage.usage_date],
        set_={
            "chat_count": UserUsage.chat_count + 1,
            "tokens_used": UserUsage.tokens_used + stmt.excluded.tokens_used,
            "updated_at": stmt.excluded.updated_at,
        },
        where=UserUsage.chat_count < limit
    ).returning(UserUsage.chat_count)

    result = await db.execute(stmt)
    new_count = result.scalar_one_or_none()
    await db.commit()
    return new_count


async def get_usage_info(
    db: AsyncSession,
    user_id: int,
    limit: int = DAILY_CHAT_LIMIT,
    today: Optional[date] = None
) -> dict:
    """
    Get current usage info for display to user.

    Returns:
        Dict with used, limit, remaining, tokens_used
    """
    stmt = select(UserUsage).where(
        UserUsage.user_id == user_id,
        UserUsage.usage_date == (today or date.today())
    )
    result = await db.execute(stmt)
    usage = result.scalar_one_or_none()
    used = usage.chat_count if usage else 0

    return {
        "used": used,
        "limit": limit,
        "remaining": max(0, limit - used),
        "tokens_used": usage.tokens_used if usage else 0
    }
