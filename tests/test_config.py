"""
tests/test_config.py -- Unit tests for core/config.py Settings validation.

Covers:
  - DEBUG=true generates a SECRET_KEY; production mode requires one
  - production mode refuses the console outbox and requires a real SMTP host
  - SECRET_KEY shorter than 32 characters is rejected
  - OTP_LENGTH bounds, positive durations, MAIL_BACKEND choices
  - comma-separated list settings and smtp_enabled

Settings is constructed directly with keyword arguments (not via the cached
get_settings()), so these tests never disturb the app's configuration.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import PLACEHOLDER_SMTP_HOST, Settings

KEY = "k" * 32


class TestSecretKey:
    def test_debug_generates_key(self) -> None:
        """In DEBUG mode an empty key is replaced with a random 64-hex-char key."""
        settings = Settings(debug=True, secret_key="")
        assert len(settings.secret_key) == 64

    def test_production_requires_key(self) -> None:
        """Outside DEBUG an empty key refuses to load."""
        with pytest.raises(ValidationError, match="SECRET_KEY is required"):
            Settings(debug=False, secret_key="")

    def test_short_key_rejected(self) -> None:
        """Keys under 32 characters are refused in every mode."""
        with pytest.raises(ValidationError, match="at least 32 characters"):
            Settings(debug=True, secret_key="short")


class TestFieldValidation:
    @pytest.mark.parametrize("length", [3, 11])
    def test_otp_length_bounds(self, length: int) -> None:
        """OTP_LENGTH outside 4..10 is refused."""
        with pytest.raises(ValidationError):
            Settings(secret_key=KEY, otp_length=length)

    def test_non_positive_expiry_rejected(self) -> None:
        """A zero-minute OTP window is refused."""
        with pytest.raises(ValidationError):
            Settings(secret_key=KEY, otp_expiry_minutes=0)

    def test_unknown_mail_backend_rejected(self) -> None:
        """Only console and smtp are transports."""
        with pytest.raises(ValidationError):
            Settings(secret_key=KEY, mail_backend="pigeon")

    def test_empty_domain_list_rejected(self) -> None:
        """At least one organization domain must be configured."""
        with pytest.raises(ValidationError):
            Settings(secret_key=KEY, allowed_email_domains=" , ")


class TestDerivedValues:
    def test_domain_list_normalized(self) -> None:
        """Domains are split on commas, trimmed, lower-cased, and stripped of '@'."""
        settings = Settings(secret_key=KEY, allowed_email_domains=" @Org.Edu, staff.org.edu ")
        assert settings.allowed_email_domain_list == ["org.edu", "staff.org.edu"]

    def test_host_and_origin_lists(self) -> None:
        """Hosts and CORS origins are comma-separated."""
        settings = Settings(secret_key=KEY, allowed_hosts="a.example, b.example", cors_origins="http://x")
        assert settings.allowed_host_list == ["a.example", "b.example"]
        assert settings.cors_origin_list == ["http://x"]

    def test_smtp_disabled_with_placeholder_host(self) -> None:
        """MAIL_BACKEND=smtp with the placeholder host still uses the console."""
        settings = Settings(secret_key=KEY, mail_backend="smtp", smtp_host=PLACEHOLDER_SMTP_HOST)
        assert settings.smtp_enabled is False

    def test_smtp_enabled_with_real_host(self) -> None:
        """A real host plus MAIL_BACKEND=smtp enables SMTP delivery."""
        settings = Settings(secret_key=KEY, mail_backend="SMTP", smtp_host="mail.org.edu")
        assert settings.smtp_enabled is True


class TestMailDelivery:
    def test_production_refuses_console(self) -> None:
        """Outside DEBUG the default console outbox refuses to load."""
        with pytest.raises(ValidationError, match="SMTP delivery is required"):
            Settings(debug=False, secret_key=KEY)

    def test_production_refuses_placeholder_host(self) -> None:
        """MAIL_BACKEND=smtp is not enough while SMTP_HOST is the placeholder."""
        with pytest.raises(ValidationError, match="SMTP delivery is required"):
            Settings(debug=False, secret_key=KEY, mail_backend="smtp", smtp_host=PLACEHOLDER_SMTP_HOST)

    def test_production_with_smtp_loads(self) -> None:
        """A real SMTP host satisfies production mode."""
        settings = Settings(debug=False, secret_key=KEY, mail_backend="smtp", smtp_host="mail.org.edu")
        assert settings.smtp_enabled is True

    def test_debug_allows_console(self) -> None:
        """DEBUG keeps the console outbox available for local work."""
        assert Settings(debug=True, secret_key=KEY).mail_backend == "console"
