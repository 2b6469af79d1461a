from functools import lru_cache
from typing import Dict, Optional
import logging

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ado_gateway.exceptions import ConfigurationException
from ado_gateway.resilience.circuit_breaker import CircuitBreakerConfig
from ado_gateway.resilience.config import ResilienceConfig
from ado_gateway.resilience.rate_limiter import RateLimitConfig
from ado_gateway.resilience.retry import RetryConfig
from ado_gateway.resilience.timeout import TimeoutConfig

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://dev.azure.com"
DEFAULT_API_VERSION = "7.1"


class AzureDevOpsConfig(BaseModel):
    """Connection details handed to the transports."""

    model_config = ConfigDict(frozen=True)

    pat: SecretStr
    organization: str
    project: str
    team: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    api_version: str = DEFAULT_API_VERSION

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def organization_url(self) -> str:
        return f"{self.base_url}/{self.organization}"

    @property
    def default_team(self) -> str:
        return self.team or self.project


class LoggingSettings(BaseModel):
    """Logging configuration settings."""
    level: Optional[str] = None  # falls back to LOG_LEVEL
    file: Optional[str] = None
    console: bool = True
    json_format: Optional[bool] = None  # Auto-detect based on environment

    logger_levels: Dict[str, str] = Field(default_factory=lambda: {
        "httpx": "WARNING",
        "httpcore": "WARNING",
        "msrest": "WARNING",
        "azure": "WARNING",
    })


class ResilienceSettings(BaseModel):
    """Defaults for the resilient call chain."""
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=1.0, ge=0)
    retry_max_jitter: float = Field(default=1.0, ge=0)
    circuit_failure_threshold: int = Field(default=5, ge=1)
    circuit_reset_timeout: float = Field(default=60.0, ge=0)
    rate_limit_capacity: int = Field(default=100, ge=1)
    rate_limit_refill_rate: float = Field(default=10.0, gt=0)
    attempt_timeout: Optional[float] = Field(default=60.0, gt=0)


class TelemetrySettings(BaseModel):
    buffer_size: int = Field(default=1000, ge=1)


class Settings(BaseSettings):
    """
    Gateway configuration.
    Values are loaded from environment variables and a .env file; nested
    sections can be overridden with ``SECTION__FIELD`` variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # --- Azure DevOps ---
    AZURE_DEVOPS_PAT: SecretStr
    AZURE_DEVOPS_ORG: str
    AZURE_DEVOPS_PROJECT: str
    AZURE_DEVOPS_TEAM: Optional[str] = None
    AZURE_DEVOPS_BASE_URL: str = DEFAULT_BASE_URL
    AZURE_DEVOPS_API_VERSION: str = DEFAULT_API_VERSION

    # --- Application Configuration ---
    ENVIRONMENT: str = Field(default="development", description="Application environment")
    LOG_LEVEL: str = Field(default="info", description="Default log level")
    ENABLE_TELEMETRY: bool = Field(default=True, description="Collect request telemetry")

    # --- Sections ---
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    resilience: ResilienceSettings = Field(default_factory=ResilienceSettings)
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)

    @property
    def azure_devops(self) -> AzureDevOpsConfig:
        return AzureDevOpsConfig(
            pat=self.AZURE_DEVOPS_PAT,
            organization=self.AZURE_DEVOPS_ORG,
            project=self.AZURE_DEVOPS_PROJECT,
            team=self.AZURE_DEVOPS_TEAM,
            base_url=self.AZURE_DEVOPS_BASE_URL,
            api_version=self.AZURE_DEVOPS_API_VERSION,
        )

    def resilience_config(self) -> ResilienceConfig:
        section = self.resilience
        return ResilienceConfig(
            circuit_breaker=CircuitBreakerConfig(
                failure_threshold=section.circuit_failure_threshold,
                reset_timeout=section.circuit_reset_timeout,
            ),
            retry=RetryConfig(
                max_attempts=section.retry_max_attempts,
                base_delay=section.retry_base_delay,
                max_jitter=section.retry_max_jitter,
            ),
            rate_limit=RateLimitConfig(
                capacity=section.rate_limit_capacity,
                refill_rate=section.rate_limit_refill_rate,
            ),
            timeout=TimeoutConfig(attempt_timeout=section.attempt_timeout),
        )


def load_settings(**overrides) -> Settings:
    """Build settings, converting pydantic validation errors into ``ConfigurationException``."""
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        missing = [".".join(str(part) for part in error["loc"]) for error in exc.errors()]
        logger.error("Invalid gateway configuration", extra={"config_keys": missing})
        raise ConfigurationException(
            f"Invalid or missing configuration: {', '.join(missing)}",
            config_key=missing[0] if missing else None,
            details={"errors": missing},
        ) from exc


@lru_cache()
def get_settings() -> Settings:
    return load_settings()
