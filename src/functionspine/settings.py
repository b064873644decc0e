"""
Server settings.

All values can be overridden via environment variables prefixed with
``FUNCTION_`` (``FUNCTION_TARGET``, ``FUNCTION_PORT``, ...) or a ``.env``
file. The CLI additionally honours the conventional ``PORT`` variable.

Order of precedence (highest → lowest):
    1. Explicit keyword arguments / CLI options
    2. Environment variables
    3. ``.env`` file
    4. Defaults below
"""

from __future__ import annotations

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TARGET = "function"
DEFAULT_SOURCE = "./main.py"


class ServerConfig(BaseSettings):
    """Settings for serving one function."""

    model_config = SettingsConfigDict(
        env_prefix="FUNCTION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Function ─────────────────────────────────────────────────────────
    target: str = Field(default=DEFAULT_TARGET, description="Name of the function to serve")
    source: str = Field(default=DEFAULT_SOURCE, description="File or module that defines the function")
    signature_type: str | None = Field(
        default=None,
        description="Expected function kind (http, typed, cloudevent); checked at startup when set",
    )

    # ── Server ───────────────────────────────────────────────────────────
    bind_addr: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8080, ge=0, le=65535, description="Bind port (0 picks a free port)")
    min_threads: int = Field(default=1, ge=1, description="Minimum worker threads")
    max_threads: int = Field(default=16, ge=1, description="Maximum concurrent handler threads")
    graceful_shutdown_timeout: float = Field(
        default=10.0,
        ge=0,
        description="Seconds in-flight requests may run after a shutdown signal",
    )

    # ── Errors & logging ─────────────────────────────────────────────────
    show_error_details: bool = Field(default=False, description="Return exception details in 500 bodies")
    log_level: str = Field(default="INFO", description="Log level")
    json_logs: bool | None = Field(default=None, description="JSON log output (auto when unset)")

    @field_validator("signature_type")
    @classmethod
    def _check_signature_type(cls, value: str | None) -> str | None:
        if value is None or value == "":
            return None
        value = value.lower()
        if value == "event":
            value = "cloudevent"
        if value not in {"http", "typed", "cloudevent"}:
            raise ValueError(f"Unknown signature type {value!r}")
        return value

    @field_validator("max_threads")
    @classmethod
    def _check_threads(cls, value: int, info: ValidationInfo) -> int:
        min_threads = info.data.get("min_threads", 1)
        if value < min_threads:
            raise ValueError("max_threads must be >= min_threads")
        return value

    @property
    def address(self) -> str:
        return f"{self.bind_addr}:{self.port}"


__all__ = ["ServerConfig", "DEFAULT_TARGET", "DEFAULT_SOURCE"]
