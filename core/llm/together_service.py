# core/llm/together_service.py
import logging
from typing import AsyncIterator, Dict, List
from openai import AsyncOpenAI

from .base import LLMService
from config import Settings
from core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class TogetherService(LLMService):
    """LLM Service for Together AI through its OpenAI-compatible endpoint, with streaming."""

    def __init__(self, settings: Settings):
        if not settings.together_api_key:
            raise ConfigurationError("TOGETHER_API_KEY is not set in the environment.")

        self.client = AsyncOpenAI(
            api_key=settings.together_api_key,
            base_url=settings.together_base_url,
            timeout=settings.upstream_timeout_seconds,
            # Failures are reported to the caller, never retried.
            max_retries=0,
        )
        self.model_name = settings.together_model_name
        logger.info(f"Together AI service initialized in STREAMING mode with model: {self.model_name}")

    async def open_stream(self, messages: List[Dict[str, str]]) -> AsyncIterator[str]:
        """Submits the chat completion with stream=True and returns the delta iterator."""
        stream = await self.client.chat.completions.create(
            model=self.model_name,
            messages=messages,
            stream=True,
        )
        logger.info(f"Together AI accepted a streaming request with {len(messages)} messages.")
        return self._iter_deltas(stream)

    @staticmethod
    async def _iter_deltas(stream) -> AsyncIterator[str]:
        """Yields the non-empty assistant text of each chunk; other chunks are skipped."""
        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta
            if delta and delta.content:
                yield delta.content

    async def close(self) -> None:
        await self.client.close()
