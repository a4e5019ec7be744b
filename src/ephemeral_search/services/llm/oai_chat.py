from __future__ import annotations

import logging
from typing import Optional, Union

from openai import AsyncAzureOpenAI, AsyncOpenAI

from src.ephemeral_search.settings import Settings

logger = logging.getLogger(__name__)


class ChatCompleter:
    """Single-turn chat completion: one system prompt, one user message, text back."""

    def __init__(
        self,
        client: Union[AsyncOpenAI, AsyncAzureOpenAI],
        model: str,
        *,
        temperature: float = 0.0,
        max_tokens: int = 1200,
    ) -> None:
        self._client = client
        self.model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["ChatCompleter"]:
        """Azure deployment when configured, plain OpenAI otherwise; None if neither is."""
        if settings.azure_openai_chat_deployment and settings.azure_openai_endpoint:
            client: Union[AsyncOpenAI, AsyncAzureOpenAI] = AsyncAzureOpenAI(
                azure_endpoint=settings.azure_openai_endpoint,
                api_key=settings.azure_openai_api_key,
                api_version=settings.azure_openai_api_version,
            )
            return cls(client, settings.azure_openai_chat_deployment)
        if settings.openai_api_key:
            return cls(AsyncOpenAI(api_key=settings.openai_api_key), settings.chat_model)
        logger.info("No chat model configured; checklist answers are unavailable")
        return None

    async def ask(self, system: str, user: str) -> str:
        resp = await self._client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        if not resp.choices:
            return ""
        return resp.choices[0].message.content or ""

    async def aclose(self) -> None:
        await self._client.close()
