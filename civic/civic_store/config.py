"""
Configuration management for the civic data layer.

All configuration is done via environment variables. This module provides
typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that keep existing deployments working
    - Keep env variable names stable; they are part of the deployment contract
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class StoreBackend(Enum):
    """Supported document store backends."""

    MEMORY = "memory"
    SQLITE = "sqlite"


@dataclass(frozen=True)
class StoreConfig:
    """Document store configuration.

    Attributes:
        backend: Which backend to use
        sqlite_path: Database file for the SQLite backend
        require_composite_indexes: Fail filtered+ordered queries without an index
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    backend: StoreBackend = StoreBackend.MEMORY
    sqlite_path: str = "/var/lib/civic/civic.db"
    require_composite_indexes: bool = True
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> StoreConfig:
        """Load configuration from environment variables."""
        backend_str = os.getenv("STORE_BACKEND", "memory").lower()
        try:
            backend = StoreBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid STORE_BACKEND '{backend_str}'. Must be one of: memory, sqlite"
            ) from None

        return cls(
            backend=backend,
            sqlite_path=os.getenv("STORE_SQLITE_PATH", "/var/lib/civic/civic.db"),
            require_composite_indexes=os.getenv("STORE_REQUIRE_INDEXES", "true").lower()
            == "true",
            busy_timeout_ms=int(os.getenv("STORE_BUSY_TIMEOUT_MS", "5000")),
        )


@dataclass(frozen=True)
class LedgerConfig:
    """Petition ledger and identifier allocation settings.

    Attributes:
        optimistic: Version-check signature writes and retry on conflict
        max_retries: Conflict retries before giving up
        number_prefix: Prefix of membership numbers
    """

    optimistic: bool = True
    max_retries: int = 5
    number_prefix: str = "DC"

    @classmethod
    def from_env(cls) -> LedgerConfig:
        """Load configuration from environment variables."""
        return cls(
            optimistic=os.getenv("LEDGER_OPTIMISTIC", "true").lower() == "true",
            max_retries=int(os.getenv("LEDGER_MAX_RETRIES", "5")),
            number_prefix=os.getenv("MEMBERSHIP_NUMBER_PREFIX", "DC"),
        )


@dataclass(frozen=True)
class EmailConfig:
    """Outbound email configuration.

    Attributes:
        api_url: Resend-compatible send endpoint
        api_key: API key (secret)
        from_address: Sender shown to recipients
        timeout_seconds: Per-request timeout
    """

    api_url: str = "https://api.resend.com/emails"
    api_key: str | None = None
    from_address: str = "DC <onboarding@resend.dev>"
    timeout_seconds: float = 10.0

    @classmethod
    def from_env(cls) -> EmailConfig:
        """Load configuration from environment variables."""
        return cls(
            api_url=os.getenv("EMAIL_API_URL", "https://api.resend.com/emails"),
            api_key=os.getenv("RESEND_API_KEY"),
            from_address=os.getenv("EMAIL_FROM", "DC <onboarding@resend.dev>"),
            timeout_seconds=float(os.getenv("EMAIL_TIMEOUT", "10")),
        )


@dataclass(frozen=True)
class HttpConfig:
    """HTTP API server configuration.

    Attributes:
        host: Bind host
        port: Bind port
    """

    host: str = "0.0.0.0"
    port: int = 8080

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        return cls(
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            port=int(os.getenv("HTTP_PORT", "8080")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServiceConfig:
    """Complete service configuration.

    Attributes:
        store: Document store configuration
        ledger: Ledger and allocator configuration
        email: Outbound email configuration
        http: HTTP server configuration
        observability: Logging configuration
    """

    store: StoreConfig = field(default_factory=StoreConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    email: EmailConfig = field(default_factory=EmailConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServiceConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        config = cls(
            store=StoreConfig.from_env(),
            ledger=LedgerConfig.from_env(),
            email=EmailConfig.from_env(),
            http=HttpConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.store.backend == StoreBackend.SQLITE and not self.store.sqlite_path:
            raise ValueError("STORE_SQLITE_PATH is required when STORE_BACKEND=sqlite")

        if self.ledger.max_retries < 0:
            raise ValueError("LEDGER_MAX_RETRIES must be >= 0")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError("LOG_FORMAT must be 'json' or 'text'")

        if not self.email.api_key:
            logger.warning("RESEND_API_KEY is not set; outbound email will fail")

        if self.store.backend == StoreBackend.SQLITE:
            data_dir = os.path.dirname(self.store.sqlite_path)
            if data_dir and not os.path.exists(data_dir):
                logger.warning(
                    f"Data directory does not exist: {data_dir}. "
                    "It will be created on connect."
                )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Service configuration loaded",
            extra={
                "store_backend": self.store.backend.value,
                "sqlite_path": self.store.sqlite_path
                if self.store.backend == StoreBackend.SQLITE
                else None,
                "require_composite_indexes": self.store.require_composite_indexes,
                "ledger_optimistic": self.ledger.optimistic,
                "email_api_url": self.email.api_url,
                "email_api_key": "***" if self.email.api_key else None,
                "http_bind": f"{self.http.host}:{self.http.port}",
                "log_level": self.observability.log_level,
            },
        )
