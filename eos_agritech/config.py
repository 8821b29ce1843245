"""
Application configuration using Pydantic settings.
"""
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # EOS API Configuration
    eos_api_base_url: str = Field(
        default="https://api-connect.eos.com",
        description="Base URL for the EOS statistics and weather API"
    )
    eos_data_api_key: str = Field(
        default="",
        description="EOS API key (EOS_DATA_API_KEY)"
    )
    eos_statistics_bearer: str = Field(
        default="",
        description="Alternative EOS statistics key, used when the data key is unset"
    )
    eos_proxy_url: Optional[str] = Field(
        default=None,
        description="URL of a remote eos-proxy endpoint; the in-process proxy is used when unset"
    )

    # Transport Retry Configuration
    max_retry_attempts: int = Field(
        default=3,
        description="Maximum number of retry attempts for transport and 5xx errors"
    )
    retry_backoff_multiplier: int = Field(
        default=1,
        description="Multiplier for exponential backoff"
    )
    retry_min_wait: int = Field(
        default=4,
        description="Minimum wait time in seconds between retries"
    )
    retry_max_wait: int = Field(
        default=10,
        description="Maximum wait time in seconds between retries"
    )

    # Statistics Task Polling
    status_poll_min_interval: float = Field(
        default=6.0,
        description="Delay in seconds before the first status poll is repeated"
    )
    status_poll_max_interval: float = Field(
        default=8.0,
        description="Upper bound in seconds for the delay between status polls"
    )
    status_poll_max_attempts: int = Field(
        default=18,
        description="Maximum number of status polls per statistics task"
    )

    # Summary Fetcher (escalation state machine)
    summary_max_attempts: int = Field(
        default=4,
        description="Number of escalation attempts before giving up"
    )
    summary_error_pause: float = Field(
        default=2.0,
        description="Pause in seconds after a non rate-limit error"
    )
    summary_max_rate_limit_retries: int = Field(
        default=4,
        description="Rate-limit retries allowed on a single attempt"
    )
    summary_deadline_seconds: Optional[float] = Field(
        default=None,
        description="Overall time budget for one summary fetch (unbounded when unset)"
    )

    # Empty-result fallback filters used by the proxy
    fallback_max_cloud_cover: int = Field(
        default=90,
        description="Cloud cover tolerance used for the tolerant retry"
    )
    default_max_cloud_cover: int = Field(
        default=90,
        description="Cloud cover tolerance used when the request does not set one"
    )

    # Session Store
    session_store_path: str = Field(
        default="eos_session.db",
        description="SQLite file holding the last polygon, config and summary"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    # CORS Configuration
    cors_origins: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins (use specific origins in production)"
    )

    # Rate Limiting
    rate_limit_requests: int = Field(
        default=100,
        description="Maximum requests per minute per client"
    )

    # Application Settings
    app_name: str = Field(
        default="EOS Agritech Field Analytics",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )
    debug: bool = Field(
        default=False,
        description="Debug mode"
    )

    @property
    def eos_api_key(self) -> str:
        """Key used for EOS calls: the data key, falling back to the statistics bearer."""
        return self.eos_data_api_key or self.eos_statistics_bearer

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
