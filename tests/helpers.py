"""Test doubles and database helpers shared by the test modules."""

from datetime import date
from pathlib import Path
from typing import List, Optional

from sqlalchemy import create_engine as create_sync_engine, func, select
from sqlalchemy.orm import Session

from businessgpt.models import ChatMessage, ChatSession, User, UserUsage
from businessgpt.providers import ProviderReply


class FakeProvider:
    """Provider double that records calls and returns a fixed reply or error."""

    def __init__(self, content: str = "Here is your draft.", tokens: int = 42, error: Optional[Exception] = None):
        self.content = content
        self.tokens = tokens
        self.error = error
        self.calls: List[str] = []

    async def complete(self, message: str) -> ProviderReply:
        self.calls.append(message)
        if self.error:
            raise self.error
        return ProviderReply(content=self.content, total_tokens=self.tokens)


async def set_usage(session_factory, user_id: int, chat_count: int, tokens_used: int = 0) -> None:
    """Seed today's usage row for a user."""
    async with session_factory() as db:
        db.add(UserUsage(
            user_id=user_id,
            usage_date=date.today(),
            chat_count=chat_count,
            tokens_used=tokens_used,
        ))
        await db.commit()


async def today_usage(session_factory, user_id: int) -> Optional[UserUsage]:
    async with session_factory() as db:
        result = await db.execute(select(UserUsage).where(
            UserUsage.user_id == user_id,
            UserUsage.usage_date == date.today(),
        ))
        return result.scalar_one_or_none()


async def count_rows(session_factory, model) -> int:
    async with session_factory() as db:
        return (await db.execute(select(func.count()).select_from(model))).scalar_one()


async def count_history(session_factory):
    return (
        await count_rows(session_factory, ChatSession),
        await count_rows(session_factory, ChatMessage),
    )


def sync_engine_for(db_path: Path):
    """Plain (sync) engine on the same SQLite file, for seeding data behind a running app."""
    return create_sync_engine(f"sqlite:///{db_path}")


def seed_user_sync(db_path: Path, google_id: str = "google-2002", email: str = "hanako@example.com") -> int:
    engine = sync_engine_for(db_path)
    try:
        with Session(engine) as session:
            user = User(google_id=google_id, email=email, name="Hanako Suzuki")
            session.add(user)
            session.commit()
            return user.id
    finally:
        engine.dispose()


def seed_usage_sync(db_path: Path, user_id: int, chat_count: int) -> None:
    engine = sync_engine_for(db_path)
    try:
        with Session(engine) as session:
            session.add(UserUsage(user_id=user_id, usage_date=date.today(), chat_count=chat_count, tokens_used=0))
            session.commit()
    finally:
        engine.dispose()
