# core/llm/base.py
from abc import ABC, abstractmethod
from typing import AsyncIterator, Dict, List


class LLMService(ABC):
    """
    Interface for the upstream completion provider.

    open_stream performs the request and returns only once the provider has
    accepted it, so failures at this point can still be answered with a
    regular JSON error. Iterating the returned object yields the reply as
    text deltas, in the order the provider sends them.
    """

    @abstractmethod
    async def open_stream(self, messages: List[Dict[str, str]]) -> AsyncIterator[str]:
        ...

    async def close(self) -> None:
        """Releases any network resources held by the service."""
