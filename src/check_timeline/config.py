"""Configuration management for check-timeline."""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

ENV_BASE_URL = "CHECKS_API_BASE_URL"
ENV_API_KEY = "CHECKS_API_KEY"
ENV_APP_NAME = "CHECKS_APP_NAME"


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_str(name: str) -> Optional[str]:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return None
    return value.strip()


class ChecksApiConfig(BaseModel):
    """Connection settings for the Checks REST API."""

    base_url: Optional[str] = Field(default=None, description="API root, no trailing slash")
    api_key: Optional[str] = Field(default=None)
    app_name: Optional[str] = Field(default=None)
    timeout_seconds: float = Field(default=10.0)
    max_retries: int = Field(default=3)
    retry_backoff: float = Field(default=0.5, description="urllib3 backoff factor")

    @property
    def configured(self) -> bool:
        return all(value and value.strip() for value in (self.base_url, self.api_key, self.app_name))


class CheckTimelineConfig(BaseModel):
    """Main configuration for check-timeline."""

    checks_api: ChecksApiConfig = Field(default_factory=ChecksApiConfig)
    parallel: bool = Field(default=False, description="Fetch sources concurrently")
    output_dir: Path = Field(default_factory=Path.cwd)

    @classmethod
    def from_env(cls) -> "CheckTimelineConfig":
        """Load configuration from environment variables or defaults."""
        base_url = _env_str(ENV_BASE_URL)
        output_dir = _env_str("CHECK_TIMELINE_OUTPUT_DIR")

        return cls(
            checks_api=ChecksApiConfig(
                base_url=base_url.rstrip("/") if base_url else None,
                api_key=_env_str(ENV_API_KEY),
                app_name=_env_str(ENV_APP_NAME),
                timeout_seconds=float(os.environ.get("CHECKS_API_TIMEOUT", "10")),
                max_retries=int(os.environ.get("CHECKS_API_MAX_RETRIES", "3")),
            ),
            parallel=_env_bool("CHECK_TIMELINE_PARALLEL", False),
            output_dir=Path(output_dir).expanduser() if output_dir else Path.cwd(),
        )

    @property
    def checks_api_configured(self) -> bool:
        return self.checks_api.configured
