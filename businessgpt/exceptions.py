"""Error types raised by the chat workflow.

QuotaExceeded and ProviderError terminate a turn and are mapped to HTTP
responses in main.py. PersistenceError is only ever logged.
"""

from typing import Optional

from .models.user_usage import QUOTA_MESSAGE


class ChatError(Exception):
    """Base exception for all chat workflow errors."""

    pass


class QuotaExceeded(ChatError):
    """Daily chat limit reached (429). Recoverable tomorrow, no retry."""

    def __init__(self, used: int, limit: int):
        self.used = used
        self.limit = limit
        super().__init__(QUOTA_MESSAGE.format(limit=limit))


class ProviderError(ChatError):
    """Upstream LLM call failed: missing key, network, timeout, non-2xx or malformed body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class PersistenceError(ChatError):
    """Chat history could not be written."""

    pass
