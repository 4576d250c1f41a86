"""
Quota-guarded chat workflow
===========================
One chat turn: quota check -> provider call -> usage recording -> history.

Quota is only consumed when the provider produced a reply. History writes
happen after the user has been charged, so a failure there is logged and the
turn still succeeds.
"""

import time
from dataclasses import dataclass
from typing import Mapping

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from .exceptions import PersistenceError, QuotaExceeded
from .history import save_chat_history
from .models.user_usage import DAILY_CHAT_LIMIT
from .providers import ChatModel, ChatProvider
from .quota import check_quota, record_usage


@dataclass
class ChatTurn:
    """Result of a successful chat turn."""

    reply: str
    tokens: int
    model: str


class QuotaGuardedChatService:
    """Runs chat turns against a fixed set of providers under a daily quota."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        providers: Mapping[ChatModel, ChatProvider],
        daily_limit: int = DAILY_CHAT_LIMIT,
    ):
        self.session_factory = session_factory
        self.providers = providers
        self.daily_limit = daily_limit

    async def handle(self, user_id: int, message: str, model_name: str) -> ChatTurn:
        """
        Run one chat turn for an authenticated user.

        Args:
            user_id: ID of a persisted, authenticated user
            message: Non-empty user message
            model_name: Requested model; unknown names fall back to gpt-4o

        Returns:
            ChatTurn with the reply text, token count and resolved model

        Raises:
            QuotaExceeded: Daily limit reached (before or during the turn)
            ProviderError: Upstream call failed; nothing is recorded
        """
        model = ChatModel.resolve(model_name)

        async with self.session_factory() as db:
            used = await check_quota(db, user_id, self.daily_limit)

        logger.info(f"Chat turn: user_id={user_id}, model={model.value}, used={used}/{self.daily_limit}")

        start = time.monotonic()
        reply = await self.providers[model].complete(message)
        latency_ms = int((time.monotonic() - start) * 1000)
        logger.info(f"Provider replied in {latency_ms}ms with {reply.total_tokens} tokens (model={model.value})")

        await self._record_usage(user_id, reply.total_tokens)
        await self._save_history(user_id, message, reply.content, model.value, reply.total_tokens)

        return ChatTurn(reply=reply.content, tokens=reply.total_tokens, model=model.value)

    async def _record_usage(self, user_id: int, tokens: int) -> None:
        async with self.session_factory() as db:
            try:
                new_count = await record_usage(db, user_id, tokens, self.daily_limit)
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error(f"Failed to record usage for user_id={user_id}: {e}")
                return

        if new_count is None:
            # A concurrent turn took the last slot after our pre-check
            logger.warning(f"Quota exhausted during turn for user_id={user_id}")
            raise QuotaExceeded(used=self.daily_limit, limit=self.daily_limit)

    async def _save_history(
        self,
        user_id: int,
        message: str,
        reply: str,
        model: str,
        tokens: int
    ) -> None:
        async with self.session_factory() as db:
            try:
                session_id = await save_chat_history(db, user_id, message, reply, model, tokens)
            except PersistenceError as e:
                logger.error(f"Failed to save chat history: {e}")
                return

        logger.debug(f"Saved chat to DB: session_id={session_id}, user_id={user_id}")
