from pydantic_settings import BaseSettings
from pydantic import field_validator, ConfigDict
from functools import lru_cache
from typing import Optional
import os
import json
import boto3
from botocore.exceptions import BotoCoreError, ClientError

from shared_utils.constants import Defaults, LogScope, ModelIDs
from shared_utils.logging_utils import get_scoped_logger

logger = get_scoped_logger(LogScope.CONFIG)


def get_secret_from_aws(secret_name: str, region: str = Defaults.AWS_REGION) -> str:
    """Fetch the OpenAI key from AWS Secrets Manager.

    Args:
        secret_name: Name of the secret in Secrets Manager
        region: AWS region

    Returns:
        Secret value or empty string if fetch fails
    """
    try:
        client = boto3.client("secretsmanager", region_name=region)
        response = client.get_secret_value(SecretId=secret_name)
        if "SecretString" in response:
            secret = json.loads(response["SecretString"])
            return secret.get("openai_api_key", "")
        return ""
    except (BotoCoreError, ClientError, ValueError) as e:
        logger.warning("secret_fetch_failed", secret_name=secret_name, error=str(e))
        return ""


class Settings(BaseSettings):
    """Application configuration with environment variable precedence.

    Precedence: 1) Environment Variables > 2) .env file > 3) Class defaults

    External resources default to empty so the service starts without
    credentials; empty bucket/table names select the in-memory adapters.
    """
    # Application metadata
    app_name: str = "VeriAct"
    app_version: str = "1.0.0"
    app_description: str = "Meeting action item extraction and collaboration API"
    app_url: str = "http://localhost:3000"  # links in reminder e-mails

    # API Base URL Configuration
    api_host: str = "localhost"
    api_port: int = 8000
    api_protocol: str = "http"

    # Environment
    environment: str = "development"
    log_level: str = Defaults.LOG_LEVEL

    # LLM / transcription
    llm_provider: str = "openai"
    openai_api_key: Optional[str] = None
    openai_secret_name: Optional[str] = None
    openai_llm_model_id: str = ModelIDs.OPENAI_CHAT_MODEL
    openai_transcription_model_id: str = ModelIDs.OPENAI_TRANSCRIPTION_MODEL
    transcription_language: str = Defaults.TRANSCRIPTION_LANGUAGE
    extraction_temperature: float = Defaults.EXTRACTION_TEMPERATURE
    extraction_max_tokens: int = Defaults.EXTRACTION_MAX_TOKENS

    # Media preprocessing
    media_preprocessing_enabled: bool = False
    ffmpeg_path: Optional[str] = None
    temp_dir: Optional[str] = None

    # AWS
    aws_region: str = Defaults.AWS_REGION
    aws_endpoint_url: Optional[str] = None  # LocalStack
    s3_media_bucket: str = ""
    dynamodb_table_name: str = ""
    signed_url_ttl_seconds: int = Defaults.SIGNED_URL_TTL_SECONDS
    storage_retention_hours: int = Defaults.STORAGE_RETENTION_HOURS

    # Scheduled jobs
    cron_secret: Optional[str] = None

    # Stripe
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_price_pro: Optional[str] = None
    stripe_price_enterprise: Optional[str] = None
    stripe_skip_signature: bool = False

    # Recall.ai
    recall_api_key: Optional[str] = None
    recall_api_base: str = "https://us-west-2.recall.ai"
    recall_webhook_secret: Optional[str] = None

    # Resend
    resend_api_key: Optional[str] = None
    resend_domain: Optional[str] = None
    resend_test_email: Optional[str] = None

    # Export
    ics_domain: str = "veriact.app"

    # Rate limiting
    rate_limit_enabled: bool = True
    extraction_rate_limit: str = "20/minute"
    transcription_rate_limit: str = "5/minute"

    model_config = ConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @field_validator('llm_provider')
    @classmethod
    def validate_llm_provider(cls, v: str) -> str:
        """Validate LLM provider is supported."""
        valid_providers = {"openai"}
        if v.lower() not in valid_providers:
            raise ValueError(f"llm_provider must be one of {valid_providers}, got {v}")
        return v.lower()

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is recognized."""
        valid_envs = {"development", "staging", "production"}
        if v.lower() not in valid_envs:
            raise ValueError(f"environment must be one of {valid_envs}, got {v}")
        return v.lower()

    @field_validator('extraction_temperature')
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        if not 0.0 <= v <= 2.0:
            raise ValueError(f"extraction_temperature must be between 0 and 2, got {v}")
        return v

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def skip_stripe_signature(self) -> bool:
        """Signature bypass only ever applies in development."""
        return self.stripe_skip_signature and self.is_development

    @property
    def from_email(self) -> str:
        if self.resend_domain:
            return f"VeriAct <reminders@{self.resend_domain}>"
        return "VeriAct <onboarding@resend.dev>"

    def get_api_base_url(self) -> str:
        """Get full API base URL constructed from host, port and protocol.

        Returns:
            Full API base URL (e.g., "http://localhost:8000")
        """
        # Don't add port if it's standard (80 for http, 443 for https)
        port_str = "" if (
            (self.api_protocol == "http" and self.api_port == 80) or
            (self.api_protocol == "https" and self.api_port == 443)
        ) else f":{self.api_port}"

        return f"{self.api_protocol}://{self.api_host}{port_str}"


@lru_cache()
def get_settings() -> Settings:
    """Load and cache application settings.

    If OPENAI_SECRET_NAME is provided and no key is set directly,
    fetches the API key from AWS Secrets Manager.

    Returns:
        Validated Settings instance

    Raises:
        ValueError: If settings are invalid
    """
    settings = Settings()

    if not settings.openai_api_key and settings.openai_secret_name:
        secret_key = get_secret_from_aws(settings.openai_secret_name, settings.aws_region)
        if secret_key:
            settings.openai_api_key = secret_key
            os.environ["OPENAI_API_KEY"] = secret_key
            logger.debug("fetched_openai_key_from_secrets_manager")

    # Sensitive values are reported as presence flags only
    logger.info(
        "configuration_loaded",
        environment=settings.environment,
        aws_region=settings.aws_region,
        llm_model_id=settings.openai_llm_model_id,
        media_bucket=settings.s3_media_bucket or None,
        table_name=settings.dynamodb_table_name or None,
        openai_configured=bool(settings.openai_api_key),
        stripe_configured=bool(settings.stripe_secret_key),
        recall_configured=bool(settings.recall_api_key),
        resend_configured=bool(settings.resend_api_key),
    )

    return settings
