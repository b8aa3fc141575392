# core/llm/factory.py
"""
Factory module to instantiate the correct LLM service based on settings.
"""
import logging
from config import Settings
from .base import LLMService
from .together_service import TogetherService

logger = logging.getLogger(__name__)


def get_llm_service(settings: Settings) -> LLMService:
    """
    Factory function that returns the LLM service for the configured provider.
    The application calls it once at startup and keeps the instance on app.state.
    Raises ConfigurationError when the provider's credential is missing.
    """
    provider = settings.llm_provider.lower()
    logger.info(f"Creating LLM service for provider: '{provider}'")
    if provider == 'together':
        return TogetherService(settings)
    raise ValueError(f"Unsupported LLM provider: {provider}")
