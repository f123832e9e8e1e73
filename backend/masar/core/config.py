"""Application configuration loaded from environment variables.

Settings for database, HTTP surface, session verification, CSRF, one-time
passcodes, password reset, email delivery, and rate limiting. Uses
pydantic-settings for validation and .env file support.
"""

from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "masar_dev_password"  # nosec B105

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32

# Accepted OTP lengths (digits)
_MIN_OTP_LENGTH = 4
_MAX_OTP_LENGTH = 10


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "masar"
    database_user: str = "masar_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # API
    # 0.0.0.0 binds to all network interfaces (required for Docker containers)
    api_host: str = "0.0.0.0"  # nosec B104
    api_port: int = 8000

    # CORS (Security)
    # CRITICAL: Never set to ["*"] when allow_credentials=True
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Session verification
    # Sessions are issued by the external session provider. This service only
    # verifies the signed cookie it sets.
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "masar"
    auth_audience: str = "masar"
    auth_cookie_name: str = "masar.session-token"

    # CSRF (double-submit cookie)
    csrf_cookie_name: str = "csrf_token"
    csrf_header_name: str = "X-CSRF-Token"
    csrf_cookie_max_age: int = 86400  # 24 hours
    csrf_cookie_secure: bool = False  # Forced on in production
    csrf_cookie_samesite: Literal["lax", "strict", "none"] = "lax"
    csrf_rotate_on_use: bool = False

    # One-time passcodes (email verification)
    otp_length: int = 6
    otp_ttl_minutes: int = 10
    otp_max_failed_attempts: int = 5

    # Password reset tokens
    reset_token_ttl_minutes: int = 60

    # Enumeration policy: unknown emails get the same response as known ones
    enumeration_safe: bool = True

    # Email
    email_from: str = "noreply@masar.app"
    resend_api_key: SecretStr = SecretStr("")
    email_timeout_seconds: float = 10.0

    # Frontend URL (password reset links point here)
    frontend_url: str = "http://localhost:3000"

    # Rate Limiting (Security)
    # Format: "count/period" (e.g., "10/minute", "5/hour")
    rate_limit_register: str = "3/hour"
    rate_limit_otp: str = "5/hour"  # send-otp, resend-otp
    rate_limit_verify: str = "10/minute"  # verify-otp
    rate_limit_reset: str = "5/hour"  # forgot-password, reset-password
    rate_limit_enabled: bool = True  # Disable for testing

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def is_production(self) -> bool:
        """True when running with production security requirements."""
        return self.environment == "production"

    @property
    def csrf_cookie_is_secure(self) -> bool:
        """Secure flag for the CSRF cookie (always on in production)."""
        return self.csrf_cookie_secure or self.is_production

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate configuration invariants.

        Checks:
        - OTP length within 4-10 digits, TTLs and attempt limit positive
        - SameSite=None CSRF cookie requires the Secure flag
        - CORS must not use wildcard origin (incompatible with credentials)
        - Database password must not be the default in production
        - AUTH_SECRET must be set and >= 32 chars in production
        """
        if not _MIN_OTP_LENGTH <= self.otp_length <= _MAX_OTP_LENGTH:
            msg = (
                f"OTP_LENGTH must be between {_MIN_OTP_LENGTH} and "
                f"{_MAX_OTP_LENGTH}. Got: {self.otp_length}"
            )
            raise ValueError(msg)

        for name in (
            "otp_ttl_minutes",
            "otp_max_failed_attempts",
            "reset_token_ttl_minutes",
            "csrf_cookie_max_age",
        ):
            if getattr(self, name) <= 0:
                msg = f"{name.upper()} must be positive. Got: {getattr(self, name)}"
                raise ValueError(msg)

        if self.csrf_cookie_samesite == "none" and not self.csrf_cookie_is_secure:
            msg = (
                "CSRF_COOKIE_SECURE must be true when CSRF_COOKIE_SAMESITE=none. "
                "Browsers reject SameSite=None cookies without the Secure flag."
            )
            raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "This application uses credentials (cookies) which are "
                "incompatible with wildcard CORS origins."
            )
            raise ValueError(msg)

        if self.is_production:
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            secret_value = self.auth_secret.get_secret_value()
            if len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
                msg = (
                    f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                    "characters in production."
                )
                raise ValueError(msg)

        return self


settings = Settings()
