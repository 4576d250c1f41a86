"""
User persistence
================
Upsert the signed-in Google account into the users table.
"""

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import Identity
from .database import dialect_insert
from .models.user import User


async def upsert_user(db: AsyncSession, identity: Identity) -> User:
    """
    Create the user on first login, refresh name/picture on later logins.

    Keyed on the Google subject id. Email is only written on insert.

    Returns:
        The persisted User
    """
    now = datetime.now(timezone.utc)
    insert = dialect_insert(db)

    stmt = insert(User).values(
        google_id=identity.subject,
        email=identity.email,
        name=identity.name,
        picture=identity.picture,
        plan="trial",
        created_at=now,
        updated_at=now
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[User.google_id],
        set_={
            "name": stmt.excluded.name,
            "picture": stmt.excluded.picture,
            "updated_at": stmt.excluded.updated_at,
        }
    ).returning(User.id)

    result = await db.execute(stmt)
    user_id = result.scalar_one()
    await db.commit()

    return await db.get(User, user_id, populate_existing=True)


async def get_user(db: AsyncSession, user_id: int):
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()
