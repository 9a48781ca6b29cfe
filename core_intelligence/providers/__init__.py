"""
Abstract base classes for swappable providers.
Enables dependency injection and flexible component swapping.
"""

from abc import ABC, abstractmethod
from typing import Optional
import logging


class BaseProvider(ABC):
    """Base class for all providers."""

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(f"{self.__class__.__module__}.{self.__class__.__name__}")

    @abstractmethod
    def initialize(self) -> None:
        """Initialize provider. Called after instantiation."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if provider is available and credentials are valid."""
        pass


class LLMProviderBase(BaseProvider):
    """Abstract base for chat LLM providers."""

    @abstractmethod
    def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Generate a completion for one user message."""
        pass


class TranscriptionProviderBase(BaseProvider):
    """Abstract base for speech-to-text providers."""

    @abstractmethod
    def transcribe_file(self, file_path: str) -> str:
        """Transcribe one audio file within the provider's size limit."""
        pass


class ProviderFactory(ABC):
    """Base factory for creating providers."""

    @staticmethod
    @abstractmethod
    def create(**kwargs) -> BaseProvider:
        """Create and initialize provider instance."""
        pass
