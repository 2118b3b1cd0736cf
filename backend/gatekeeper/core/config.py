"""Application configuration loaded from environment variables.

Settings for the database, API, outbound email, identifier generation and
the credential/token lifetimes. Uses pydantic-settings for validation and
.env file support. The settings object is frozen: build it once with
``get_settings()`` and pass it to the components that need it.
"""

from datetime import timedelta
from functools import lru_cache

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "gatekeeper_dev_password"  # nosec B105

# Machine id occupies the low 16 bits of every generated identifier
_MAX_MACHINE_ID = 0xFFFF


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "gatekeeper"
    database_user: str = "gatekeeper_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # API
    # 0.0.0.0 binds to all network interfaces (required for Docker containers)
    api_host: str = "0.0.0.0"  # nosec B104
    api_port: int = 8000

    # CORS (Security)
    # Session tokens travel in the Authorization header, so credentials are
    # allowed and the origin list must stay explicit.
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Application
    app_name: str = "Gatekeeper"
    environment: str = "development"
    log_level: str = "INFO"

    # Request guard: bodies above this size are rejected with 400
    max_body_bytes: int = 1024 * 1024

    # Identifier generation (hex string, 16 bits)
    machine_id: str = "1"

    # Email (Resend)
    email_from: str = "noreply@gatekeeper.local"
    resend_api_key: SecretStr = SecretStr("")

    # Front-end base URL used to build verify / reset / change-email links
    frontend_url: str = "http://localhost:3000"

    # Credential and token lifetimes
    password_min_length: int = 8
    session_idle_days: int = 7
    token_resend_cooldown_minutes: int = 60
    reset_token_ttl_hours: int = 24
    email_change_token_ttl_hours: int = 24
    # None keeps verification links usable until consumed
    verification_token_ttl_hours: int | None = None

    @field_validator("frontend_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        """Normalize the front-end URL so links never contain '//'."""
        return value.rstrip("/")

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def database_url_sync(self) -> str:
        """Sync database URL for Alembic."""
        return (
            f"postgresql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def machine_id_value(self) -> int:
        """Machine id parsed from its hex representation."""
        return int(self.machine_id, 16)

    @property
    def session_idle_window(self) -> timedelta:
        """Maximum gap between two uses of a session."""
        return timedelta(days=self.session_idle_days)

    @property
    def token_resend_cooldown(self) -> timedelta:
        """Minimum age of a pending token before it may be replaced."""
        return timedelta(minutes=self.token_resend_cooldown_minutes)

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate configuration invariants and production requirements.

        Checks:
        - MACHINE_ID must be hex and fit in 16 bits (all environments)
        - Lifetimes and limits must be positive (all environments)
        - CORS must not use wildcard origin (incompatible with credentials)
        - Database password must not be the default in production
        - RESEND_API_KEY must be set in production
        - FRONTEND_URL must use https in production
        """
        try:
            machine_id = int(self.machine_id, 16)
        except ValueError:
            msg = f"MACHINE_ID must be a hexadecimal string. Got: {self.machine_id!r}"
            raise ValueError(msg) from None
        if not 0 <= machine_id <= _MAX_MACHINE_ID:
            msg = f"MACHINE_ID must fit in 16 bits. Got: {self.machine_id!r}"
            raise ValueError(msg)

        positive = {
            "PASSWORD_MIN_LENGTH": self.password_min_length,
            "SESSION_IDLE_DAYS": self.session_idle_days,
            "TOKEN_RESEND_COOLDOWN_MINUTES": self.token_resend_cooldown_minutes,
            "RESET_TOKEN_TTL_HOURS": self.reset_token_ttl_hours,
            "EMAIL_CHANGE_TOKEN_TTL_HOURS": self.email_change_token_ttl_hours,
            "MAX_BODY_BYTES": self.max_body_bytes,
        }
        if self.verification_token_ttl_hours is not None:
            positive["VERIFICATION_TOKEN_TTL_HOURS"] = (
                self.verification_token_ttl_hours
            )
        for name, value in positive.items():
            if value <= 0:
                msg = f"{name} must be positive. Got: {value}"
                raise ValueError(msg)

        # CORS wildcard with credentials is invalid (all environments)
        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "Credentialed requests are incompatible with wildcard CORS origins."
            )
            raise ValueError(msg)

        if self.environment == "production":
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            if not self.resend_api_key.get_secret_value():
                msg = "RESEND_API_KEY must be set in production."
                raise ValueError(msg)

            if not self.frontend_url.startswith("https://"):
                msg = (
                    "FRONTEND_URL must use https in production. "
                    "Delivery links carry one-time tokens."
                )
                raise ValueError(msg)

        return self


@lru_cache
def get_settings() -> Settings:
    """Build the process-wide settings once.

    Returns:
        The cached, immutable Settings instance.
    """
    return Settings()
