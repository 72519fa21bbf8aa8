# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Reporter settings using Pydantic Settings."""

import os
import socket
from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..errors import ConfigurationError


class ReporterSettings(BaseSettings):
    """Configuration for the error reporter.

    All settings can be overridden via ERROR_REPORTER_* environment variables
    or passed explicitly to ``create_reporter``.
    """

    model_config = SettingsConfigDict(
        env_prefix="ERROR_REPORTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Identity
    api_key: str = ""
    endpoint: str = "https://api.honeybadger.io"
    notices_path: str = "/v1/notices"
    metrics_path: str = "/v1/metrics"

    # Environment
    environment: str = "production"
    hostname: str = ""
    project_root: str = ""

    # Reporting switches
    enabled: bool = True
    development_environments: list[str] = ["development", "dev", "test"]
    timeout: float = 5.0

    # Filtering
    filters: list[str] = [
        "password",
        "password_confirmation",
        "secret",
        "token",
        "api_key",
        "authorization",
        "credit_card",
        "creditcard",
        "card_number",
    ]
    sensitive_headers: list[str] = [
        "authorization",
        "x-api-key",
        "cookie",
        "set-cookie",
        "proxy-authorization",
    ]

    # Request middleware
    exclude_paths: list[str] = ["/health", "/metrics"]
    request_metric_prefix: str = "app.request"

    # Observability
    metrics_prefix: str = "error_reporter"
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "json"

    @field_validator("endpoint")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def resolved_hostname(self) -> str:
        return self.hostname or socket.gethostname()

    @property
    def resolved_project_root(self) -> str:
        return self.project_root or os.getcwd()

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in {e.lower() for e in self.development_environments}

    @property
    def should_report(self) -> bool:
        """Whether notices and metrics are actually delivered."""
        return self.enabled and bool(self.api_key) and not self.is_development

    def validate_for_delivery(self) -> None:
        """Raise ConfigurationError if delivery cannot work with these settings."""
        if not self.api_key:
            raise ConfigurationError(
                "ERROR_REPORTER_API_KEY is required to deliver notices",
                details={"setting": "api_key"},
            )
        if not self.endpoint.startswith(("http://", "https://")):
            raise ConfigurationError(
                f"endpoint must be an http(s) URL: {self.endpoint!r}",
                details={"setting": "endpoint"},
            )


@lru_cache
def get_settings() -> ReporterSettings:
    """Get cached reporter settings."""
    return ReporterSettings()


def clear_settings_cache() -> None:
    """Clear settings cache (useful for testing)."""
    get_settings.cache_clear()
