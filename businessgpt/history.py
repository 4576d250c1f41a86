"""
Chat History
============
Persist each chat turn and read it back for the history endpoints.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .exceptions import PersistenceError
from .models.chat import ChatSession, ChatMessage, SESSION_TITLE_MAX_LENGTH

ELLIPSIS = "..."


def make_session_title(message: str) -> str:
    """Session title: the message itself, or its first 47 characters + '...' when longer than 50."""
    if len(message) > SESSION_TITLE_MAX_LENGTH:
        return message[:SESSION_TITLE_MAX_LENGTH - len(ELLIPSIS)] + ELLIPSIS
    return message


async def save_chat_history(
    db: AsyncSession,
    user_id: int,
    user_message: str,
    assistant_message: str,
    model: str,
    tokens: int
) -> int:
    """
    Save one chat turn: a new ChatSession plus the user and assistant messages.

    Args:
        db: Database session
        user_id: Owning user ID
        user_message: User's message
        assistant_message: Provider reply
        model: Model identifier used for the turn
        tokens: Tokens billed for the reply

    Returns:
        ID of the new ChatSession

    Raises:
        PersistenceError if any write fails (the transaction is rolled back)
    """
    try:
        chat_session = ChatSession(
            user_id=user_id,
            title=make_session_title(user_message),
            model=model
        )
        db.add(chat_session)
        await db.flush()  # Get the ID

        db.add(ChatMessage(
            session_id=chat_session.id,
            role="user",
            content=user_message,
            model=model
        ))
        await db.flush()  # Keep user message ahead of the reply

        db.add(ChatMessage(
            session_id=chat_session.id,
            role="assistant",
            content=assistant_message,
            model=model,
            tokens_used=tokens
        ))

        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError(f"Could not save chat history for user_id={user_id}: {e}") from e

    return chat_session.id


async def get_user_chat_sessions(
    db: AsyncSession,
    user_id: int,
    limit: int = 20,
    offset: int = 0
) -> List[Dict[str, Any]]:
    """
    Get user's chat sessions ordered by most recent.
    """
    stmt = (
        select(ChatSession)
        .where(ChatSession.user_id == user_id)
        .order_by(ChatSession.created_at.desc(), ChatSession.id.desc())
        .limit(limit)
        .offset(offset)
    )
    result = await db.execute(stmt)
    sessions = result.scalars().all()

    return [
        {
            "id": s.id,
            "title": s.title,
            "model": s.model,
            "created_at": s.created_at.isoformat() if s.created_at else None
        }
        for s in sessions
    ]


async def get_chat_messages(
    db: AsyncSession,
    user_id: int,
    session_id: int
) -> Optional[List[Dict[str, Any]]]:
    """
    Get messages for one of the user's chat sessions.

    Returns:
        List of message dicts, or None if the session does not belong to the user
    """
    stmt = select(ChatSession).where(
        ChatSession.id == session_id,
        ChatSession.user_id == user_id
    )
    result = await db.execute(stmt)
    chat_session = result.scalar_one_or_none()

    if not chat_session:
        return None

    stmt = (
        select(ChatMessage)
        .where(ChatMessage.session_id == chat_session.id)
        .order_by(ChatMessage.id.asc())
    )
    result = await db.execute(stmt)
    messages = result.scalars().all()

    return [
        {
            "role": m.role,
            "content": m.content,
            "model": m.model,
            "tokens_used": m.tokens_used,
            "created_at": m.created_at.isoformat() if m.created_at else None
        }
        for m in messages
    ]
