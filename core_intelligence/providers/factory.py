"""
Factory for creating configured provider instances.
Handles provider instantiation with dependency injection.
"""

import logging

from core_intelligence.providers import LLMProviderBase, TranscriptionProviderBase
from core_intelligence.providers.openai_llm import OpenAILLMProvider
from core_intelligence.providers.openai_transcription import OpenAITranscriptionProvider
from shared_utils.config_loader import get_settings
from shared_utils.constants import LLMProvider, LogScope
from shared_utils.error_handler import ConfigurationError


logger = logging.getLogger(__name__)


class LLMProviderFactory:
    """Factory for creating LLM providers."""

    @staticmethod
    def create() -> LLMProviderBase:
        """Create configured LLM provider.

        Returns:
            Initialized LLM provider.

        Raises:
            ConfigurationError: If config is invalid.
        """
        settings = get_settings()
        llm_provider = settings.llm_provider

        logger.info(
            "Creating LLM provider",
            extra={"scope": LogScope.CONFIG, "provider": llm_provider}
        )

        if llm_provider != LLMProvider.OPENAI.value:
            raise ConfigurationError(f"Unknown LLM provider: {llm_provider}")
        if not settings.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY not configured")

        provider = OpenAILLMProvider(
            model_id=settings.openai_llm_model_id,
            api_key=settings.openai_api_key,
            temperature=settings.extraction_temperature,
            max_tokens=settings.extraction_max_tokens,
        )
        provider.initialize()
        return provider


class TranscriptionProviderFactory:
    """Factory for creating speech-to-text providers."""

    @staticmethod
    def create() -> TranscriptionProviderBase:
        """Create configured transcription provider.

        Raises:
            ConfigurationError: If the API key is missing.
        """
        settings = get_settings()

        logger.info(
            "Creating transcription provider",
            extra={"scope": LogScope.CONFIG, "model_id": settings.openai_transcription_model_id}
        )

        if not settings.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY not configured")

        provider = OpenAITranscriptionProvider(
            api_key=settings.openai_api_key,
            model_id=settings.openai_transcription_model_id,
            language=settings.transcription_language,
        )
        provider.initialize()
        return provider
