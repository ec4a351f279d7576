"""Application configuration for the LayerEdge node keeper.

Central configuration module powered by Pydantic v2.  Settings are loaded from
environment variables (with ``.env`` file support).

Key exports:
    NodeSettings: Root settings model (instantiate once in ``main.py``).
    RetryPolicy: Immutable request timeout / retry ceiling consumed by
        :class:`~nodekeeper.http_client.ResilientHttpClient`.
    BASE_DIR: Canonical project root.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Base Paths
# ---------------------------------------------------------------------------
BASE_DIR: Path = Path(__file__).parent.parent
"""Project root directory (parent of ``nodekeeper/``)."""

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://referral-api.layeredge.io"
DEFAULT_REFERRAL_CODE = "mWJ5uQp5"


@dataclass(frozen=True)
class RetryPolicy:
    """Per-request timeout and fixed-interval retry ceiling.

    Attributes:
        timeout_ms: Timeout applied to every single attempt.
        max_attempts: Total attempts before a request is given up.
        retry_interval_seconds: Fixed wait between two attempts.
    """

    timeout_ms: int = 60000
    max_attempts: int = 30
    retry_interval_seconds: float = 2.0


class NodeSettings(BaseSettings):
    """Root configuration model for the node keeper.

    All fields can be set via environment variables or a ``.env`` file
    (names are case-insensitive, e.g. ``SWEEP_INTERVAL_SECONDS=600``).

    Section overview:
        * **Remote API** -- base URL and referral code.
        * **Input files** -- wallet list and proxy list paths.
        * **Requests** -- per-attempt timeout and retry policy.
        * **Scheduling** -- sweep interval and startup delay.
        * **Logging** -- level and log file path.
    """

    # Remote API
    api_base_url: str = DEFAULT_API_BASE_URL
    # Used only by the one-time registration pass
    referral_code: str = DEFAULT_REFERRAL_CODE

    # Input files
    # One "address,privateKey" per line
    wallets_file: str = "wallets.txt"
    # One proxy URI per line (http://, socks4://, socks5://)
    proxies_file: str = "proxy.txt"

    # Requests
    request_timeout_seconds: float = Field(default=60.0, gt=0)
    max_attempts: int = Field(default=30, ge=1)
    retry_interval_seconds: float = Field(default=2.0, ge=0)

    # Scheduling
    sweep_interval_seconds: float = Field(default=3600.0, ge=0)
    startup_delay_seconds: float = Field(default=3.0, ge=0)

    # Logging
    log_level: str = "INFO"
    log_file: str = "logs/nodekeeper.log"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @field_validator("api_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def _normalise_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level

    def request_defaults(self) -> RetryPolicy:
        """Build the request policy shared by every wallet's client.

        Returns:
            A :class:`RetryPolicy` reflecting the current settings.
        """
        return RetryPolicy(
            timeout_ms=int(self.request_timeout_seconds * 1000),
            max_attempts=self.max_attempts,
            retry_interval_seconds=self.retry_interval_seconds,
        )
