"""
OpenAI Whisper transcription provider implementation.
"""

from openai import OpenAI

from core_intelligence.providers import TranscriptionProviderBase
from shared_utils.constants import Defaults, LogScope, ModelIDs


class OpenAITranscriptionProvider(TranscriptionProviderBase):
    """Speech-to-text through the OpenAI audio transcription endpoint."""

    def __init__(
        self,
        api_key: str,
        model_id: str = ModelIDs.OPENAI_TRANSCRIPTION_MODEL,
        language: str = Defaults.TRANSCRIPTION_LANGUAGE,
    ):
        super().__init__(name=f"OpenAITranscription({model_id})")
        self.api_key = api_key
        self.model_id = model_id
        self.language = language
        self._client = None

    def initialize(self) -> None:
        """Initialize OpenAI client."""
        try:
            self._client = OpenAI(api_key=self.api_key)
            self.logger.info(
                "Initialized OpenAI transcription provider",
                extra={"scope": LogScope.PROVIDER, "model_id": self.model_id}
            )
        except Exception as e:
            self.logger.error(
                "Failed to initialize OpenAI transcription provider",
                extra={"scope": LogScope.PROVIDER, "error": str(e)}
            )
            raise

    def is_available(self) -> bool:
        return self._client is not None

    def transcribe_file(self, file_path: str) -> str:
        if not self.is_available():
            raise RuntimeError("OpenAI transcription provider not initialized")

        with open(file_path, "rb") as audio:
            result = self._client.audio.transcriptions.create(
                model=self.model_id,
                file=audio,
                language=self.language,
            )
        return result.text
