"""Configuration management for the deCentra client.

This module provides centralized configuration using Pydantic Settings.
Values come from environment variables (or a local ``.env`` file) and are
treated as opaque configuration by the rest of the client.

Environment Profiles:
    - DEVELOPMENT: Verbose logging, single concurrency, console tracing
    - PRODUCTION: Conservative settings, JSON logs, tracing enabled
    - TESTING: Minimal logging, no retry backoff, no tracing

Example:
    >>> from decentra.config import settings, PrivacyMode
    >>> print(settings.backend_host)
    http://localhost:4943
    >>> settings.session_ceiling(PrivacyMode.WHISTLEBLOWER)
    datetime.timedelta(seconds=7200)
"""

from datetime import timedelta
from enum import StrEnum
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PrivacyMode(StrEnum):
    """User-selected privacy mode governing session exposure."""

    STANDARD = "standard"
    ANONYMOUS = "anonymous"
    WHISTLEBLOWER = "whistleblower"


class PostVisibility(StrEnum):
    """Who can view and interact with a post."""

    PUBLIC = "Public"
    FOLLOWERS_ONLY = "FollowersOnly"
    UNLISTED = "Unlisted"


class ProfileVisibility(StrEnum):
    """Who can view a profile."""

    PUBLIC = "Public"
    FOLLOWERS_ONLY = "FollowersOnly"
    PRIVATE = "Private"


class MessagePrivacy(StrEnum):
    """Who can send direct messages to a profile."""

    EVERYONE = "Everyone"
    FOLLOWERS_ONLY = "FollowersOnly"
    NOBODY = "Nobody"


class VerificationStatus(StrEnum):
    """Account verification status."""

    UNVERIFIED = "Unverified"
    VERIFIED = "Verified"
    ORGANIZATION = "Organization"
    JOURNALIST = "Journalist"
    WHISTLEBLOWER = "Whistleblower"


class FollowRequestStatus(StrEnum):
    """Lifecycle of a follow request against a non-public profile."""

    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class Environment(StrEnum):
    """Runtime environment with specific behavior profiles.

    Attributes:
        DEVELOPMENT: Verbose logging, single concurrency, console tracing
        PRODUCTION: Conservative settings, tracing enabled
        TESTING: Minimal logging, fast execution
        STAGING: Pre-production validation environment
    """

    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"
    STAGING = "staging"


# Maximum session lifetime requested from the identity provider at login.
# The provider enforces the ceiling; the client only asks for it.
PRIVACY_MODE_SESSION_CEILINGS: dict[PrivacyMode, timedelta] = {
    PrivacyMode.STANDARD: timedelta(days=7),
    PrivacyMode.ANONYMOUS: timedelta(days=1),
    PrivacyMode.WHISTLEBLOWER: timedelta(hours=2),
}


class Settings(BaseSettings):
    """Application settings with environment variable support.

    Attributes:
        backend_host: Remote-service host
        backend_canister_id: Opaque backend identifier used in RPC paths
        identity_provider_url: Identity-provider endpoint
        identity_token: Pre-issued delegation token (CLI use only)
        identity_principal: Principal bound to ``identity_token``
        default_page_limit: Page size used when the caller passes none
        max_page_limit: Upper bound for any page size
        max_offset: Upper bound for any pagination offset
        rate_limit_window_seconds: Minimum spacing between calls of one operation
        batch_size: Chunk size for batched secondary lookups
        remote_call_timeout_seconds: Ceiling applied to every remote call
        idle_timeout_minutes: Inactivity period that ends a session
        max_concurrency: Maximum in-flight HTTP requests
        retry_attempts: Attempts for transient transport failures
        retry_backoff_seconds: Exponential backoff multiplier
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment Configuration
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Runtime environment (development, production, testing, staging)",
    )

    # Remote endpoints
    backend_host: str = Field(
        "http://localhost:4943",
        description="Remote-service host",
    )
    backend_canister_id: str = Field(
        "backend",
        description="Opaque backend identifier appended to RPC paths",
    )
    identity_provider_url: str = Field(
        "https://identity.ic0.app",
        description="Identity-provider endpoint URL",
    )

    # CLI identity
    identity_token: Optional[str] = Field(
        None,
        description="Pre-issued delegation token used by the command line client",
    )
    identity_principal: Optional[str] = Field(
        None,
        description="Principal bound to identity_token",
    )

    # Data Directory Configuration
    data_dir: Path = Field(
        Path("./data"),
        description="Base directory for log files",
    )

    # Pagination
    default_page_limit: int = Field(10, ge=1, le=50)
    max_page_limit: int = Field(50, ge=1, le=500)
    max_offset: int = Field(10_000, ge=0)

    # Guard and batching
    rate_limit_window_seconds: float = Field(
        1.0,
        ge=0.0,
        description="Minimum seconds between two calls of the same operation",
    )
    batch_size: int = Field(
        10,
        ge=1,
        le=100,
        description="Secondary lookups issued concurrently per chunk",
    )

    # Session
    idle_timeout_minutes: int = Field(
        30,
        ge=1,
        description="Inactivity period after which the session is logged out",
    )

    # Transport
    remote_call_timeout_seconds: float = Field(
        15.0,
        gt=0.0,
        description="Ceiling applied to every remote call",
    )
    max_concurrency: int = Field(
        10,
        ge=1,
        le=50,
        description="Maximum concurrent HTTP requests",
    )
    retry_attempts: int = Field(
        5,
        ge=1,
        le=20,
        description="Attempts for transient transport failures",
    )
    retry_backoff_seconds: float = Field(
        0.5,
        ge=0.0,
        description="Exponential backoff multiplier for retries",
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_to_file: bool = Field(
        default=False,
        description="Enable file logging in addition to console",
    )
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format (recommended for production)",
    )

    # Observability (OpenTelemetry)
    enable_tracing: bool = Field(
        default=False,
        description="Enable OpenTelemetry distributed tracing",
    )
    otlp_endpoint: Optional[str] = Field(
        default=None,
        description="OpenTelemetry OTLP endpoint for traces (e.g., http://localhost:4317)",
    )

    @field_validator("backend_host", "identity_provider_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize endpoint URLs so paths can be appended safely."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Endpoint must be an http(s) URL")
        return v.rstrip("/")

    @field_validator("data_dir", mode="before")
    @classmethod
    def expand_data_dir(cls, v: str | Path) -> Path:
        """Expand and resolve data directory path."""
        return Path(v).expanduser().resolve()

    @model_validator(mode="after")
    def check_page_bounds(self) -> "Settings":
        """Keep the default page size inside the configured ceiling."""
        if self.default_page_limit > self.max_page_limit:
            raise ValueError("default_page_limit cannot exceed max_page_limit")
        return self

    @model_validator(mode="after")
    def apply_environment_profile(self) -> "Settings":
        """Apply environment-specific defaults.

        Profiles:
            - PRODUCTION: Conservative concurrency (max 5), JSON logs, tracing enabled
            - DEVELOPMENT: DEBUG logging, tracing disabled
            - TESTING: ERROR logging, no file logging, no retry backoff, no tracing
            - STAGING: Balanced settings between development and production

        Returns:
            Modified settings instance with environment-specific adjustments
        """
        if self.environment == Environment.PRODUCTION:
            self.max_concurrency = min(self.max_concurrency, 5)
            if self.log_level == "DEBUG":
                self.log_level = "INFO"
            self.log_json = True
            self.enable_tracing = True

        elif self.environment == Environment.DEVELOPMENT:
            self.log_level = "DEBUG"
            self.log_json = False
            self.enable_tracing = False

        elif self.environment == Environment.TESTING:
            self.log_level = "ERROR"
            self.log_to_file = False
            self.log_json = False
            self.enable_tracing = False
            self.retry_backoff_seconds = 0.0

        elif self.environment == Environment.STAGING:
            self.max_concurrency = min(self.max_concurrency, 5)
            self.log_level = "INFO"
            self.log_json = True
            self.enable_tracing = True

        return self

    @property
    def rpc_base_url(self) -> str:
        """Base URL that gateway method names are appended to."""
        return f"{self.backend_host}/api/{self.backend_canister_id}"

    @property
    def idle_timeout(self) -> timedelta:
        """Get idle timeout as timedelta."""
        return timedelta(minutes=self.idle_timeout_minutes)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.environment == Environment.TESTING

    @property
    def has_cli_identity(self) -> bool:
        """Check if a pre-issued identity is configured for the CLI."""
        return self.identity_token is not None and self.identity_principal is not None

    @staticmethod
    def session_ceiling(mode: PrivacyMode) -> timedelta:
        """Maximum session lifetime to request for a privacy mode."""
        return PRIVACY_MODE_SESSION_CEILINGS[mode]

    def redact_token(self, token: Optional[str] = None) -> str:
        """Redact sensitive token for logging.

        Args:
            token: Token to redact (defaults to identity_token)

        Returns:
            Redacted token string
        """
        token = token or self.identity_token
        if not token:
            return "None"
        return f"{token[:8]}...{token[-4:]}" if len(token) > 12 else "***"


def get_settings() -> Settings:
    """Get a settings instance built from the current environment.

    Returns:
        Configured Settings instance
    """
    return Settings()


# Global settings instance
settings = get_settings()
