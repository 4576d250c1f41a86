"""Shared pytest fixtures for the BusinessGPT backend tests."""

from pathlib import Path
from typing import Dict

import pytest
import pytest_asyncio

from businessgpt.config import Settings
from businessgpt.database import create_engine, create_session_factory, init_db
from businessgpt.models import User
from businessgpt.providers import ChatModel, PlaceholderChatProvider

from helpers import FakeProvider


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "businessgpt_test.db"


@pytest.fixture
def settings(db_path: Path) -> Settings:
    """Settings pointing at a per-test SQLite file."""
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{db_path}",
        secret_key="test-secret-key-for-testing-only",
        openai_api_key="sk-test",
        daily_chat_limit=50,
        log_level="warning",
    )


@pytest.fixture
def primary_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def providers(primary_provider: FakeProvider) -> Dict[ChatModel, object]:
    return {
        ChatModel.GPT_4O: primary_provider,
        ChatModel.CLAUDE_3: PlaceholderChatProvider("Claude 3"),
        ChatModel.GEMINI: PlaceholderChatProvider("Gemini 1.5"),
    }


@pytest_asyncio.fixture
async def engine(settings: Settings):
    engine = create_engine(settings.database_url)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def user(session_factory) -> User:
    async with session_factory() as db:
        user = User(
            google_id="google-1001",
            email="taro@example.com",
            name="Taro Yamada",
            picture="https://example.com/taro.png",
        )
        db.add(user)
        await db.commit()
        return user
