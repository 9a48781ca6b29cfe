"""
Dependency injection container for managing application dependencies.
Centralizes provider, adapter and service creation and lifecycle management.

Adapter selection:
    * S3_MEDIA_BUCKET empty       -> InMemoryMediaStoreAdapter
    * DYNAMODB_TABLE_NAME empty   -> InMemoryMetadataStoreAdapter
    * RESEND_API_KEY empty        -> LoggingNotifierAdapter
"""

from typing import Optional
import logging

from core_intelligence.engine.strategies.chunking import ChunkPlanner
from core_intelligence.media.preprocessor import MediaPreprocessor
from core_intelligence.providers import LLMProviderBase, TranscriptionProviderBase
from core_intelligence.providers.factory import LLMProviderFactory, TranscriptionProviderFactory
from domain.models import Plan
from shared_utils.config_loader import get_settings
from shared_utils.constants import LogScope
from shared_utils.error_handler import AppException, ConfigurationError


logger = logging.getLogger(__name__)


class DIContainer:
    """Singleton dependency injection container."""

    _instance: Optional['DIContainer'] = None
    _llm_provider: Optional[LLMProviderBase] = None
    _transcription_provider: Optional[TranscriptionProviderBase] = None
    _preprocessor: Optional[MediaPreprocessor] = None
    _preprocessor_checked: bool = False

    _media_store: Optional[object] = None
    _metadata_store: Optional[object] = None
    _notifier: Optional[object] = None
    _payment_gateway: Optional[object] = None
    _bot_client: Optional[object] = None

    _access_policy: Optional[object] = None
    _transcription_service: Optional[object] = None
    _extraction_service: Optional[object] = None
    _room_service: Optional[object] = None
    _organization_service: Optional[object] = None
    _billing_service: Optional[object] = None
    _meeting_bot_service: Optional[object] = None
    _reminder_service: Optional[object] = None
    _export_service: Optional[object] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def reset(self):
        """Reset container (useful for testing)."""
        self._llm_provider = None
        self._transcription_provider = None
        self._preprocessor = None
        self._preprocessor_checked = False
        self._media_store = None
        self._metadata_store = None
        self._notifier = None
        self._payment_gateway = None
        self._bot_client = None
        self._access_policy = None
        self._transcription_service = None
        self._extraction_service = None
        self._room_service = None
        self._organization_service = None
        self._billing_service = None
        self._meeting_bot_service = None
        self._reminder_service = None
        self._export_service = None

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    def get_llm_provider(self) -> LLMProviderBase:
        """Get or create LLM provider (lazy singleton).

        Raises:
            ConfigurationError: If provider initialization fails.
        """
        if self._llm_provider is None:
            logger.info(
                "Initializing LLM provider",
                extra={"scope": LogScope.CONFIG}
            )
            try:
                self._llm_provider = LLMProviderFactory.create()
            except AppException:
                raise
            except Exception as e:
                logger.error(
                    "Failed to initialize LLM provider",
                    extra={"scope": LogScope.CONFIG, "error": str(e)}
                )
                raise ConfigurationError(f"LLM provider initialization failed: {e}") from e

        return self._llm_provider

    def get_transcription_provider(self) -> TranscriptionProviderBase:
        """Get or create speech-to-text provider (lazy singleton)."""
        if self._transcription_provider is None:
            logger.info(
                "Initializing transcription provider",
                extra={"scope": LogScope.CONFIG}
            )
            try:
                self._transcription_provider = TranscriptionProviderFactory.create()
            except AppException:
                raise
            except Exception as e:
                logger.error(
                    "Failed to initialize transcription provider",
                    extra={"scope": LogScope.CONFIG, "error": str(e)}
                )
                raise ConfigurationError(f"Transcription provider initialization failed: {e}") from e

        return self._transcription_provider

    def get_preprocessor(self) -> Optional[MediaPreprocessor]:
        """ffmpeg handle when MEDIA_PREPROCESSING_ENABLED and the binary works, else None."""
        if not self._preprocessor_checked:
            self._preprocessor_checked = True
            settings = get_settings()
            if settings.media_preprocessing_enabled:
                preprocessor = MediaPreprocessor(ffmpeg_path=settings.ffmpeg_path)
                try:
                    preprocessor.initialize()
                    self._preprocessor = preprocessor
                except AppException as e:
                    logger.warning(
                        "Media preprocessing disabled",
                        extra={"scope": LogScope.CONFIG, "error": e.message}
                    )
        return self._preprocessor

    # ------------------------------------------------------------------
    # Adapters
    # ------------------------------------------------------------------

    def get_media_store(self):
        """Get or create temporary media store (lazy singleton)."""
        if self._media_store is None:
            settings = get_settings()
            if not settings.s3_media_bucket:
                from adapters.in_memory_media_store import InMemoryMediaStoreAdapter
                self._media_store = InMemoryMediaStoreAdapter()
                logger.info("Initialized InMemoryMediaStoreAdapter (local dev)")
            else:
                from adapters.s3_media_store import S3MediaStoreAdapter
                self._media_store = S3MediaStoreAdapter(
                    bucket=settings.s3_media_bucket,
                    region=settings.aws_region,
                    endpoint_url=settings.aws_endpoint_url,
                )
                logger.info("Initialized S3MediaStoreAdapter")
        return self._media_store

    def get_metadata_store(self):
        """Get or create metadata store (lazy singleton)."""
        if self._metadata_store is None:
            settings = get_settings()
            if not settings.dynamodb_table_name:
                from adapters.in_memory_metadata_store import InMemoryMetadataStoreAdapter
                self._metadata_store = InMemoryMetadataStoreAdapter()
                logger.info("Initialized InMemoryMetadataStoreAdapter (local dev)")
            else:
                from adapters.dynamo_metadata_store import DynamoMetadataStoreAdapter
                self._metadata_store = DynamoMetadataStoreAdapter(
                    table_name=settings.dynamodb_table_name,
                    region=settings.aws_region,
                    endpoint_url=settings.aws_endpoint_url,
                )
                logger.info("Initialized DynamoMetadataStoreAdapter")
        return self._metadata_store

    def get_notifier(self):
        if self._notifier is None:
            settings = get_settings()
            if not settings.resend_api_key:
                from adapters.resend_notifier import LoggingNotifierAdapter
                self._notifier = LoggingNotifierAdapter()
                logger.info("Initialized LoggingNotifierAdapter (local dev)")
            else:
                from adapters.resend_notifier import ResendNotifierAdapter
                self._notifier = ResendNotifierAdapter(
                    api_key=settings.resend_api_key,
                    from_email=settings.from_email,
                )
                logger.info("Initialized ResendNotifierAdapter")
        return self._notifier

    def get_payment_gateway(self):
        if self._payment_gateway is None:
            from adapters.stripe_payment_gateway import StripePaymentGatewayAdapter

            settings = get_settings()
            self._payment_gateway = StripePaymentGatewayAdapter(
                secret_key=settings.stripe_secret_key,
                webhook_secret=settings.stripe_webhook_secret,
                skip_signature=settings.skip_stripe_signature,
            )
            logger.info("Initialized StripePaymentGatewayAdapter")
        return self._payment_gateway

    def get_bot_client(self):
        if self._bot_client is None:
            from adapters.recall_bot_client import RecallBotClientAdapter

            settings = get_settings()
            self._bot_client = RecallBotClientAdapter(
                api_key=settings.recall_api_key,
                api_base=settings.recall_api_base,
            )
            logger.info("Initialized RecallBotClientAdapter")
        return self._bot_client

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    def get_access_policy(self):
        if self._access_policy is None:
            from services.access_policy import AccessPolicy

            store = self.get_metadata_store()
            self._access_policy = AccessPolicy(organizations=store, subscriptions=store, usage=store)
        return self._access_policy

    def get_transcription_service(self):
        """Get or create TranscriptionService (lazy singleton)."""
        if self._transcription_service is None:
            from services.transcription_service import TranscriptionService

            self._transcription_service = TranscriptionService(
                transcriber=self.get_transcription_provider(),
                media_store=self.get_media_store(),
                planner=ChunkPlanner(),
                preprocessor=self.get_preprocessor(),
                temp_dir=get_settings().temp_dir,
            )
            logger.info("Initialized TranscriptionService")
        return self._transcription_service

    def get_extraction_service(self):
        """Get or create ExtractionService (lazy singleton)."""
        if self._extraction_service is None:
            from services.extraction_service import ExtractionService

            settings = get_settings()
            self._extraction_service = ExtractionService(
                llm_provider=self.get_llm_provider(),
                access_policy=self.get_access_policy(),
                temperature=settings.extraction_temperature,
                max_tokens=settings.extraction_max_tokens,
            )
            logger.info("Initialized ExtractionService")
        return self._extraction_service

    def get_room_service(self):
        if self._room_service is None:
            from services.room_service import RoomService

            self._room_service = RoomService(
                store=self.get_metadata_store(),
                access_policy=self.get_access_policy(),
            )
        return self._room_service

    def get_organization_service(self):
        if self._organization_service is None:
            from services.organization_service import OrganizationService

            store = self.get_metadata_store()
            self._organization_service = OrganizationService(organizations=store, subscriptions=store)
        return self._organization_service

    def get_billing_service(self):
        if self._billing_service is None:
            from services.billing_service import BillingService

            settings = get_settings()
            self._billing_service = BillingService(
                gateway=self.get_payment_gateway(),
                subscriptions=self.get_metadata_store(),
                organizations=self.get_organization_service(),
                price_ids={
                    Plan.PRO: settings.stripe_price_pro,
                    Plan.ENTERPRISE: settings.stripe_price_enterprise,
                },
                app_url=settings.app_url,
            )
        return self._billing_service

    def get_meeting_bot_service(self):
        if self._meeting_bot_service is None:
            from services.meeting_bot_service import MeetingBotService

            store = self.get_metadata_store()
            self._meeting_bot_service = MeetingBotService(
                bot_client=self.get_bot_client(),
                bot_store=store,
                organizations=store,
                rooms=store,
                access_policy=self.get_access_policy(),
                extraction=self.get_extraction_service(),
                room_service=self.get_room_service(),
                webhook_secret=get_settings().recall_webhook_secret,
            )
        return self._meeting_bot_service

    def get_reminder_service(self):
        if self._reminder_service is None:
            from services.reminder_service import ReminderService

            settings = get_settings()
            self._reminder_service = ReminderService(
                rooms=self.get_metadata_store(),
                notifier=self.get_notifier(),
                access_policy=self.get_access_policy(),
                app_url=settings.app_url,
                test_recipient=settings.resend_test_email if settings.is_development else None,
            )
        return self._reminder_service

    def get_export_service(self):
        if self._export_service is None:
            from services.export_service import ExportService

            self._export_service = ExportService(ics_domain=get_settings().ics_domain)
        return self._export_service


# Global singleton instance
_container = DIContainer()


def get_di_container() -> DIContainer:
    """Get global DI container instance."""
    return _container
