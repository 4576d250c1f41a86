"""Chat providers for the enumerated models.

``gpt-4o`` is served by a real OpenAI chat-completions call. ``claude-3`` and
``gemini`` are not integrated yet and answer with a placeholder that echoes
the user's message, so their replies can never be mistaken for model output.

Example:
    ```python
    providers = build_providers(settings)
    model = ChatModel.resolve("gpt-4o")
    reply = await providers[model].complete("Write a meeting agenda")

    print(reply.content)
    print(f"Used {reply.total_tokens} tokens")
    ```
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Protocol

import httpx
from loguru import logger

from .config import Settings
from .exceptions import ProviderError


class ChatModel(str, Enum):
    GPT_4O = "gpt-4o"
    CLAUDE_3 = "claude-3"
    GEMINI = "gemini"

    @classmethod
    def resolve(cls, name: Optional[str]) -> "ChatModel":
        """Map a client-supplied model name to a ChatModel; unknown names fall back to GPT-4o."""
        try:
            return cls(name)
        except ValueError:
            return cls.GPT_4O


@dataclass
class ProviderReply:
    """Reply from a chat provider.

    Attributes:
        content: Assistant reply text
        total_tokens: Tokens billed for the turn
    """

    content: str
    total_tokens: int = 0


class ChatProvider(Protocol):
    """Protocol for chat providers."""

    async def complete(self, message: str) -> ProviderReply:
        """Send a single user message and return the reply."""
        ...


class OpenAIChatProvider:
    """OpenAI chat-completions provider over plain HTTPS."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-4o",
        base_url: str = "https://api.openai.com/v1",
        temperature: float = 0.7,
        max_tokens: int = 2000,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key; checked on each call, not here
            model: Upstream model name
            base_url: API base URL
            temperature: Sampling temperature
            max_tokens: Maximum tokens in response
            timeout: Total request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.transport = transport

    async def complete(self, message: str) -> ProviderReply:
        """Generate a reply using OpenAI.

        Raises:
            ProviderError: If the key is missing or the call fails in any way
        """
        if not self.api_key:
            raise ProviderError("OpenAI API key not configured")

        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": message}],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers=headers,
                )
        except httpx.TimeoutException as e:
            raise ProviderError(f"OpenAI API timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"OpenAI API request failed: {e}") from e

        if not resp.is_success:
            raise ProviderError(f"OpenAI API error: {resp.text}", status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError("OpenAI API returned malformed JSON") from e

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise ProviderError("no response from OpenAI API")

        try:
            content = choices[0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError("OpenAI API returned an unexpected response shape") from e

        if not isinstance(content, str) or not content:
            raise ProviderError("OpenAI API returned an empty reply")

        usage = data.get("usage") or {}
        if not isinstance(usage, dict):
            raise ProviderError("OpenAI API returned malformed usage")
        try:
            total_tokens = int(usage.get("total_tokens") or 0)
        except (TypeError, ValueError) as e:
            raise ProviderError("OpenAI API returned malformed usage") from e

        return ProviderReply(content=content, total_tokens=total_tokens)


class PlaceholderChatProvider:
    """Canned reply for models whose API integration is still in development."""

    def __init__(self, display_name: str, tokens: int = 100):
        self.display_name = display_name
        self.tokens = tokens

    async def complete(self, message: str) -> ProviderReply:
        logger.debug(f"Placeholder reply for {self.display_name}")
        content = (
            f"{self.display_name.split()[0]} APIは開発中です。現在はテスト応答を返しています:\n\n"
            f"あなたの質問「{message}」について、{self.display_name}からの応答をシミュレートしています。"
        )
        return ProviderReply(content=content, total_tokens=self.tokens)


def build_providers(settings: Settings) -> Dict[ChatModel, ChatProvider]:
    """Create one provider per enumerated model from settings."""
    return {
        ChatModel.GPT_4O: OpenAIChatProvider(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
            timeout=settings.openai_timeout,
        ),
        ChatModel.CLAUDE_3: PlaceholderChatProvider("Claude 3", tokens=settings.placeholder_tokens),
        ChatModel.GEMINI: PlaceholderChatProvider("Gemini 1.5", tokens=settings.placeholder_tokens),
    }
