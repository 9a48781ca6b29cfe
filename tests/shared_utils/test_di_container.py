"""
Tests for shared_utils.di_container.

Singleton behaviour, reset(), provider error wrapping and adapter
selection from settings. Settings and provider factories are mocked.
"""

from unittest.mock import MagicMock, patch

import pytest

from adapters.in_memory_media_store import InMemoryMediaStoreAdapter
from adapters.in_memory_metadata_store import InMemoryMetadataStoreAdapter
from adapters.resend_notifier import LoggingNotifierAdapter, ResendNotifierAdapter
from domain.models import Plan
from services.billing_service import BillingService
from services.meeting_bot_service import MeetingBotService
from services.room_service import RoomService
from shared_utils.di_container import DIContainer, get_di_container
from shared_utils.error_handler import ConfigurationError


@pytest.fixture(autouse=True)
def _reset_singleton():
    """Reset the DIContainer singleton before and after each test."""
    DIContainer._instance = None
    yield
    DIContainer._instance = None


def _mock_settings(**overrides):
    """Return a MagicMock that looks like Settings for local development."""
    defaults = {
        "s3_media_bucket": "",
        "dynamodb_table_name": "",
        "aws_region": "eu-west-2",
        "aws_endpoint_url": None,
        "resend_api_key": None,
        "from_email": "VeriAct <onboarding@resend.dev>",
        "resend_test_email": None,
        "is_development": True,
        "stripe_secret_key": "sk_test",
        "stripe_webhook_secret": "whsec",
        "skip_stripe_signature": False,
        "stripe_price_pro": "price_pro",
        "stripe_price_enterprise": "price_ent",
        "recall_api_key": "rk",
        "recall_api_base": "https://recall.test",
        "recall_webhook_secret": "rs",
        "app_url": "https://app.test",
        "ics_domain": "veriact.app",
        "extraction_temperature": 0.3,
        "extraction_max_tokens": 2000,
        "media_preprocessing_enabled": False,
        "temp_dir": None,
    }
    defaults.update(overrides)
    mock = MagicMock()
    for k, v in defaults.items():
        setattr(mock, k, v)
    return mock


class TestSingleton:
    def test_same_instance(self) -> None:
        assert DIContainer() is DIContainer()

    def test_get_di_container_returns_container(self) -> None:
        assert isinstance(get_di_container(), DIContainer)


class TestReset:
    def test_reset_clears_cached_objects(self) -> None:
        container = DIContainer()
        container._llm_provider = "fake"
        container._metadata_store = "fake"
        container._room_service = "fake"
        container._preprocessor_checked = True

        container.reset()

        assert container._llm_provider is None
        assert container._metadata_store is None
        assert container._room_service is None
        assert container._preprocessor_checked is False


class TestProviders:
    @patch("shared_utils.di_container.LLMProviderFactory.create", return_value=MagicMock())
    def test_llm_lazy_singleton(self, mock_create) -> None:
        container = DIContainer()
        assert container.get_llm_provider() is container.get_llm_provider()
        mock_create.assert_called_once()

    @patch("shared_utils.di_container.LLMProviderFactory.create", side_effect=RuntimeError("fail"))
    def test_llm_factory_error_wrapped(self, mock_create) -> None:
        with pytest.raises(ConfigurationError, match="LLM provider initialization failed"):
            DIContainer().get_llm_provider()

    @patch(
        "shared_utils.di_container.TranscriptionProviderFactory.create",
        side_effect=ConfigurationError("OPENAI_API_KEY is required"),
    )
    def test_transcription_app_exception_passes_through(self, mock_create) -> None:
        with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
            DIContainer().get_transcription_provider()

    @patch("shared_utils.di_container.get_settings")
    def test_preprocessor_disabled(self, mock_get_settings) -> None:
        mock_get_settings.return_value = _mock_settings()
        assert DIContainer().get_preprocessor() is None


class TestAdapterSelection:
    @patch("shared_utils.di_container.get_settings")
    def test_in_memory_defaults(self, mock_get_settings) -> None:
        mock_get_settings.return_value = _mock_settings()
        container = DIContainer()
        assert isinstance(container.get_media_store(), InMemoryMediaStoreAdapter)
        assert isinstance(container.get_metadata_store(), InMemoryMetadataStoreAdapter)
        assert isinstance(container.get_notifier(), LoggingNotifierAdapter)

    @patch("shared_utils.di_container.get_settings")
    def test_resend_when_key_set(self, mock_get_settings) -> None:
        mock_get_settings.return_value = _mock_settings(resend_api_key="re_123")
        assert isinstance(DIContainer().get_notifier(), ResendNotifierAdapter)

    @patch("adapters.dynamo_metadata_store.boto3.resource")
    @patch("shared_utils.di_container.get_settings")
    def test_dynamo_when_table_set(self, mock_get_settings, mock_resource) -> None:
        mock_get_settings.return_value = _mock_settings(dynamodb_table_name="veriact")
        store = DIContainer().get_metadata_store()
        assert type(store).__name__ == "DynamoMetadataStoreAdapter"
        mock_resource.assert_called_once_with("dynamodb", region_name="eu-west-2")


class TestServices:
    @patch("shared_utils.di_container.get_settings")
    def test_services_share_one_store(self, mock_get_settings) -> None:
        mock_get_settings.return_value = _mock_settings()
        container = DIContainer()

        rooms = container.get_room_service()
        assert isinstance(rooms, RoomService)
        assert rooms is container.get_room_service()
        assert rooms._store is container.get_metadata_store()

    @patch("shared_utils.di_container.get_settings")
    def test_billing_price_mapping(self, mock_get_settings) -> None:
        mock_get_settings.return_value = _mock_settings()
        billing = DIContainer().get_billing_service()
        assert isinstance(billing, BillingService)
        assert billing._prices == {Plan.PRO: "price_pro", Plan.ENTERPRISE: "price_ent"}

    @patch("shared_utils.di_container.LLMProviderFactory.create", return_value=MagicMock())
    @patch("shared_utils.di_container.get_settings")
    def test_meeting_bot_service_wiring(self, mock_get_settings, mock_llm) -> None:
        mock_get_settings.return_value = _mock_settings()
        service = DIContainer().get_meeting_bot_service()
        assert isinstance(service, MeetingBotService)
        assert service._secret == "rs"
