"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for OpsMind Auth happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. The API
      lifespan reads it once and hands plain values to the services it builds,
      so no service reads configuration at request time.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Dev mode generates a signing key with a
      warning; production mode refuses to start without one.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. JWT signing relies
       on key entropy -- a short key weakens every issued session token.

  [M7] In production mode (DEBUG not set or false), a missing SECRET_KEY is a
       hard startup failure. Every restart with a random key would silently
       invalidate all outstanding session tokens.

  [M8] Outside DEBUG, MAIL_BACKEND=smtp with a real SMTP_HOST is required. The
       console outbox prints OTP codes in plaintext to stdout, which ends up
       in container logs.

  Defaults for SMTP credentials and the seeded administrator password are for
  local development only. Production deployments must override them.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or admin/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("opsmind.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'opsmind_auth.db'}"

# Placeholder host shipped in the defaults. While it is configured, outbound
# mail goes to the console transport even if MAIL_BACKEND=smtp.
PLACEHOLDER_SMTP_HOST = "smtp.example.com"


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.

    List-valued settings (email domains, hosts, CORS origins) are plain
    comma-separated strings so they can be set from a shell without JSON
    quoting. Use the *_list properties to read them.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    port: int = 3000
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Sessions and OTP
    # ------------------------------------------------------------------

    token_expire_seconds: int = 24 * 3600
    otp_length: int = 6
    otp_expiry_minutes: int = 5
    otp_purge_interval_seconds: int = 3600

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    allowed_email_domains: str = "miuegypt.edu.eg"

    # ------------------------------------------------------------------
    # Outbound mail
    # ------------------------------------------------------------------

    mail_backend: str = "console"  # "console" | "smtp"
    smtp_host: str = PLACEHOLDER_SMTP_HOST
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from_address: str = "noreply@opsmind.com"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    otp_rate_limit: str = "5/minute"
    allowed_hosts: str = "localhost,127.0.0.1,*.localhost"
    cors_origins: str = "http://localhost:3000"

    # ------------------------------------------------------------------
    # Seeded administrator
    # ------------------------------------------------------------------

    admin_email: str = "admin@opsmind.com"
    admin_password: str = "Admin@123456"

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def allowed_email_domain_list(self) -> list[str]:
        return [d.lower().lstrip("@") for d in _split_csv(self.allowed_email_domains)]

    @property
    def allowed_host_list(self) -> list[str]:
        return _split_csv(self.allowed_hosts)

    @property
    def cors_origin_list(self) -> list[str]:
        return _split_csv(self.cors_origins)

    @property
    def smtp_enabled(self) -> bool:
        """True only when real SMTP delivery is configured."""
        return self.mail_backend == "smtp" and self.smtp_host != PLACEHOLDER_SMTP_HOST

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("otp_length")
    @classmethod
    def validate_otp_length(cls, value: int) -> int:
        if not 4 <= value <= 10:
            raise ValueError("OTP_LENGTH must be between 4 and 10 digits.")
        return value

    @field_validator("otp_expiry_minutes", "token_expire_seconds", "otp_purge_interval_seconds")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Durations must be positive.")
        return value

    @field_validator("mail_backend")
    @classmethod
    def validate_mail_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in ("console", "smtp"):
            raise ValueError("MAIL_BACKEND must be 'console' or 'smtp'.")
        return value

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy [M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters [M6].
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Sessions will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if not self.allowed_email_domain_list:
            raise ValueError("ALLOWED_EMAIL_DOMAINS must name at least one domain.")
        return self

    @model_validator(mode="after")
    def validate_mail_delivery(self) -> "Settings":
        """Refuse the console outbox outside DEBUG."""
        if not self.debug and not self.smtp_enabled:
            raise ValueError(
                "SMTP delivery is required in production mode. "
                "Set MAIL_BACKEND=smtp and a real SMTP_HOST, or set DEBUG=true to use the console outbox."
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings() directly.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
