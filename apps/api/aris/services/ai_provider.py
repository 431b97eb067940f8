"""AI provider abstraction used by email analysis."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx

from aris.services.http_service import request_with_retries

logger = logging.getLogger(__name__)


@dataclass
class ChatMessage:
    """A single message in a conversation."""

    role: str  # 'system', 'user', 'assistant'
    content: str


@dataclass
class ChatResponse:
    """Response from an AI provider."""

    content: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    model: str


class AIProvider(ABC):
    """Abstract base class for AI providers."""

    @abstractmethod
    async def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.2,
        max_tokens: int = 1200,
        json_output: bool = False,
    ) -> ChatResponse:
        """Send a chat completion request."""
        pass


class OpenAIProvider(AIProvider):
    """OpenAI chat completions over httpx."""

    def __init__(
        self,
        api_key: str,
        default_model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    async def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.2,
        max_tokens: int = 1200,
        json_output: bool = False,
    ) -> ChatResponse:
        model = model or self.default_model
        body: dict = {
            "model": model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_output:
            body["response_format"] = {"type": "json_object"}

        async with httpx.AsyncClient(timeout=60.0, transport=self._transport) as client:
            response = await request_with_retries(
                lambda: client.post(
                    f"{self.base_url}/chat/completions",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=body,
                ),
                label="OpenAI chat completion",
            )
            response.raise_for_status()
            data = response.json()

        usage = data.get("usage", {})
        return ChatResponse(
            content=data["choices"][0]["message"]["content"],
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            total_tokens=usage.get("total_tokens", 0),
            model=model,
        )


def get_default_provider() -> AIProvider | None:
    """Return the configured provider, or None when no API key is set."""
    from aris.core.config import settings

    if not settings.OPENAI_API_KEY:
        return None
    return OpenAIProvider(settings.OPENAI_API_KEY, default_model=settings.OPENAI_MODEL)
