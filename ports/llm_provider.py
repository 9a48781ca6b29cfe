"""
Port interfaces for the LLM and speech-to-text collaborators.

core_intelligence/providers/ implements both. Services depend on these
protocols, not on the concrete providers.
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class LLMProviderPort(Protocol):
    """Abstract interface for LLM chat completion."""

    def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Generate text from a prompt.

        Args:
            prompt: User message.
            system_prompt: Optional system instruction.
            temperature: Sampling temperature override.
            max_tokens: Completion length cap.

        Returns:
            Raw completion text.
        """
        ...


@runtime_checkable
class TranscriptionProviderPort(Protocol):
    """Abstract interface for speech-to-text on one audio file."""

    def transcribe_file(self, file_path: str) -> str:
        """Transcribe an audio file on local disk.

        Args:
            file_path: Path to a file within the provider's size limit.

        Returns:
            Transcribed text.
        """
        ...
