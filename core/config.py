"""
Configuration management for the video generation client.

Centralizes:
- Kie.ai credentials and endpoints
- HTTP timeouts
- Polling cadence and budget
- Upload settings
"""

import os
from dataclasses import dataclass, field
from typing import Optional


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


@dataclass
class APIConfig:
    """Kie.ai API configuration."""

    kie_api_key: str = field(default_factory=lambda: os.getenv("KIE_API_KEY", ""))
    kie_api_base: str = field(
        default_factory=lambda: os.getenv("KIE_API_BASE", "https://api.kie.ai/api/v1")
    )
    # File uploads live on a separate host
    kie_upload_base: str = field(
        default_factory=lambda: os.getenv("KIE_UPLOAD_BASE", "https://kieai.redpandaai.co")
    )


@dataclass
class HTTPConfig:
    """Per-request timeouts in seconds."""
    request_timeout: float = 30.0  # Must stay below the poll budget
    upload_timeout: float = 60.0


@dataclass
class PollingConfig:
    """Completion polling cadence."""
    interval_seconds: float = field(default_factory=lambda: _env_float("KIE_POLL_INTERVAL", 5.0))
    max_attempts: int = field(default_factory=lambda: _env_int("KIE_POLL_MAX_ATTEMPTS", 60))

    @property
    def budget_seconds(self) -> float:
        return self.interval_seconds * self.max_attempts


@dataclass
class UploadConfig:
    """Source image upload settings."""
    upload_path: str = "images/video-generation"
    inter_upload_delay: float = 0.5  # Between sequential uploads


@dataclass
class Config:
    """Main configuration class."""

    api: APIConfig = field(default_factory=APIConfig)
    http: HTTPConfig = field(default_factory=HTTPConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    upload: UploadConfig = field(default_factory=UploadConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls()

    def validate(self) -> list[str]:
        """Validate configuration and return list of issues."""
        issues = []

        if not self.api.kie_api_key:
            issues.append("KIE_API_KEY not configured")

        if self.polling.interval_seconds < 0:
            issues.append("Polling interval must not be negative")

        if self.polling.max_attempts <= 0:
            issues.append("Polling max_attempts must be positive")

        if self.http.request_timeout <= 0:
            issues.append("HTTP request timeout must be positive")
        elif self.http.request_timeout >= self.polling.budget_seconds > 0:
            issues.append("HTTP request timeout must be shorter than the polling budget")

        return issues


# Global config instance (CLI only; library code takes config explicitly)
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reload_config():
    """Reload configuration from environment."""
    global _config
    _config = Config.from_env()
