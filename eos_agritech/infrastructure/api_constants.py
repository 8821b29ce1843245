"""
API endpoint constants and configuration.

This module contains all external API endpoint paths and related constants.
Centralizing these values makes it easy to swap out endpoints or update API versions.
"""


# EOS API Endpoints
class EosAPIEndpoints:
    """EOS API endpoint paths."""

    # Base paths
    GDW_BASE = "/api/gdw/api"
    WEATHER_BASE = "/api/cz/backend"

    # Statistics task endpoints
    STATISTICS_TASKS = GDW_BASE
    STATISTICS_TASK_BY_ID = f"{GDW_BASE}/{{task_id}}"

    # Weather endpoints
    WEATHER_HISTORY = f"{WEATHER_BASE}/forecast-history/"
    WEATHER_FORECAST = f"{WEATHER_BASE}/forecast/"

    @classmethod
    def get_task_status(cls, task_id: str) -> str:
        """
        Get the status endpoint for a statistics task.

        Args:
            task_id: Task identifier returned on creation

        Returns:
            Formatted endpoint path
        """
        return cls.STATISTICS_TASK_BY_ID.format(task_id=task_id)


# API Configuration Constants
class APIConstants:
    """General API configuration constants."""

    # HTTP Headers
    CONTENT_TYPE_JSON = "application/json"

    # Timeouts (in seconds)
    DEFAULT_TIMEOUT = 30.0
    LONG_TIMEOUT = 60.0
    # A proxy call may poll two statistics tasks twice
    PROXY_TIMEOUT = 300.0

    # Statistics task parameters
    TASK_TYPE = "mt_stats"
    SENSORS = ["sentinel2l2a"]
    AOI_COVER_SHARE_MIN = 0.1

    # Rate-limit backoff while polling (seconds)
    RETRY_AFTER_CAP = 30.0
    POLL_RATE_LIMIT_BASE = 7.0
    POLL_RATE_LIMIT_STEP = 2.5
    POLL_RATE_LIMIT_CAP = 20.0


# Proxy error codes returned in error payloads
class ErrorCodes:
    MISSING_ACTION = "MISSING_ACTION"
    INVALID_POLYGON = "INVALID_POLYGON"
    MISSING_API_KEY = "MISSING_API_KEY"
    RATE_LIMITED = "RATE_LIMITED"
    EOS_CREATE_FAILED = "EOS_CREATE_FAILED"
    EOS_STATUS_FAILED = "EOS_STATUS_FAILED"
    NO_TASK_ID = "NO_TASK_ID"
    TASK_TIMEOUT = "TASK_TIMEOUT"
    WEATHER_API_ERROR = "WEATHER_API_ERROR"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    UNSUPPORTED_ACTION = "UNSUPPORTED_ACTION"
