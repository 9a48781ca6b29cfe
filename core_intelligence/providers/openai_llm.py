"""
OpenAI LLM provider implementation.
"""

from typing import List, Optional

from llama_index.core.llms import ChatMessage, MessageRole
from llama_index.llms.openai import OpenAI

from core_intelligence.providers import LLMProviderBase
from shared_utils.constants import Defaults, LogScope


class OpenAILLMProvider(LLMProviderBase):
    """OpenAI chat model through llama-index."""

    def __init__(
        self,
        model_id: str,
        api_key: str,
        temperature: float = Defaults.EXTRACTION_TEMPERATURE,
        max_tokens: int = Defaults.EXTRACTION_MAX_TOKENS,
    ):
        super().__init__(name=f"OpenAILLM({model_id})")
        self.model_id = model_id
        self.api_key = api_key
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._llm = None

    def initialize(self) -> None:
        """Initialize OpenAI LLM client."""
        try:
            self._llm = OpenAI(
                model=self.model_id,
                api_key=self.api_key,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
            self.logger.info(
                "Initialized OpenAI LLM provider",
                extra={"scope": LogScope.PROVIDER, "model_id": self.model_id}
            )
        except Exception as e:
            self.logger.error(
                "Failed to initialize OpenAI LLM provider",
                extra={"scope": LogScope.PROVIDER, "error": str(e)}
            )
            raise

    def is_available(self) -> bool:
        """Check if OpenAI LLM is available."""
        return self._llm is not None

    def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Generate a chat completion."""
        if not self.is_available():
            raise RuntimeError("OpenAI LLM provider not initialized")

        messages: List[ChatMessage] = []
        if system_prompt:
            messages.append(ChatMessage(role=MessageRole.SYSTEM, content=system_prompt))
        messages.append(ChatMessage(role=MessageRole.USER, content=prompt))

        overrides = {}
        if temperature is not None:
            overrides["temperature"] = temperature
        if max_tokens is not None:
            overrides["max_tokens"] = max_tokens

        try:
            response = self._llm.chat(messages, **overrides)
            return response.message.content or ""
        except Exception as e:
            self.logger.error(
                "LLM generation failed",
                extra={"scope": LogScope.PROVIDER, "error": str(e)}
            )
            raise
