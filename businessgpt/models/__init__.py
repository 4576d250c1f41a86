"""
BusinessGPT Database Models
===========================
All SQLAlchemy ORM models for the application.
"""

from .user import User
from .chat import ChatSession, ChatMessage
from .user_usage import UserUsage

__all__ = [
    "User",
    "ChatSession",
    "ChatMessage",
    "UserUsage",
]
