"""
Tests for the OpenAI chat / transcription providers and their factories.
llama-index and openai clients are mocked.
"""

from unittest.mock import MagicMock, patch

import pytest

from core_intelligence.providers.factory import LLMProviderFactory, TranscriptionProviderFactory
from core_intelligence.providers.openai_llm import OpenAILLMProvider
from core_intelligence.providers.openai_transcription import OpenAITranscriptionProvider
from shared_utils.error_handler import ConfigurationError


def _settings(**overrides) -> MagicMock:
    settings = MagicMock()
    settings.llm_provider = "openai"
    settings.openai_api_key = "sk-test"
    settings.openai_llm_model_id = "gpt-4o-mini"
    settings.openai_transcription_model_id = "whisper-1"
    settings.transcription_language = "en"
    settings.extraction_temperature = 0.3
    settings.extraction_max_tokens = 2000
    for k, v in overrides.items():
        setattr(settings, k, v)
    return settings


class TestOpenAILLMProvider:
    @patch("core_intelligence.providers.openai_llm.OpenAI")
    def test_generate_sends_system_and_user(self, mock_openai) -> None:
        llm = MagicMock()
        llm.chat.return_value = MagicMock(message=MagicMock(content='[{"task": "x"}]'))
        mock_openai.return_value = llm

        provider = OpenAILLMProvider(model_id="gpt-4o-mini", api_key="sk")
        provider.initialize()
        result = provider.generate("transcript", system_prompt="rules", temperature=0.1, max_tokens=50)

        assert result == '[{"task": "x"}]'
        messages = llm.chat.call_args[0][0]
        assert [m.content for m in messages] == ["rules", "transcript"]
        assert llm.chat.call_args[1] == {"temperature": 0.1, "max_tokens": 50}

    @patch("core_intelligence.providers.openai_llm.OpenAI")
    def test_none_content_becomes_empty(self, mock_openai) -> None:
        mock_openai.return_value.chat.return_value = MagicMock(message=MagicMock(content=None))
        provider = OpenAILLMProvider(model_id="m", api_key="sk")
        provider.initialize()
        assert provider.generate("p") == ""

    def test_not_initialized(self) -> None:
        provider = OpenAILLMProvider(model_id="m", api_key="sk")
        assert not provider.is_available()
        with pytest.raises(RuntimeError, match="not initialized"):
            provider.generate("p")


class TestOpenAITranscriptionProvider:
    @patch("core_intelligence.providers.openai_transcription.OpenAI")
    def test_transcribe_file(self, mock_openai, tmp_path) -> None:
        client = MagicMock()
        client.audio.transcriptions.create.return_value = MagicMock(text="hello world")
        mock_openai.return_value = client
        audio = tmp_path / "chunk-0.mp3"
        audio.write_bytes(b"ID3")

        provider = OpenAITranscriptionProvider(api_key="sk")
        provider.initialize()

        assert provider.transcribe_file(str(audio)) == "hello world"
        kwargs = client.audio.transcriptions.create.call_args[1]
        assert kwargs["model"] == "whisper-1"
        assert kwargs["language"] == "en"

    def test_not_initialized(self) -> None:
        with pytest.raises(RuntimeError, match="not initialized"):
            OpenAITranscriptionProvider(api_key="sk").transcribe_file("x.mp3")


class TestFactories:
    @patch("core_intelligence.providers.openai_llm.OpenAI")
    @patch("core_intelligence.providers.factory.get_settings")
    def test_llm_factory(self, mock_get_settings, _openai) -> None:
        mock_get_settings.return_value = _settings()
        provider = LLMProviderFactory.create()
        assert isinstance(provider, OpenAILLMProvider)
        assert provider.is_available()
        assert provider.temperature == 0.3

    @patch("core_intelligence.providers.factory.get_settings")
    def test_llm_factory_requires_key(self, mock_get_settings) -> None:
        mock_get_settings.return_value = _settings(openai_api_key=None)
        with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
            LLMProviderFactory.create()

    @patch("core_intelligence.providers.factory.get_settings")
    def test_llm_factory_unknown_provider(self, mock_get_settings) -> None:
        mock_get_settings.return_value = _settings(llm_provider="other")
        with pytest.raises(ConfigurationError, match="Unknown LLM provider"):
            LLMProviderFactory.create()

    @patch("core_intelligence.providers.openai_transcription.OpenAI")
    @patch("core_intelligence.providers.factory.get_settings")
    def test_transcription_factory(self, mock_get_settings, _openai) -> None:
        mock_get_settings.return_value = _settings(transcription_language="de")
        provider = TranscriptionProviderFactory.create()
        assert isinstance(provider, OpenAITranscriptionProvider)
        assert provider.language == "de"

    @patch("core_intelligence.providers.factory.get_settings")
    def test_transcription_factory_requires_key(self, mock_get_settings) -> None:
        mock_get_settings.return_value = _settings(openai_api_key="")
        with pytest.raises(ConfigurationError):
            TranscriptionProviderFactory.create()
