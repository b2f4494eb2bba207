"""
auth/otp.py -- One-time passcode generation and expiry arithmetic.

Codes come from the secrets module (OS CSPRNG), one independent digit at a
time, so every digit is uniform over 0-9 and leading zeros survive -- the code
is a string, never an int.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta

DEFAULT_OTP_LENGTH = 6


def generate_otp(length: int = DEFAULT_OTP_LENGTH) -> str:
    """Return a numeric code of exactly `length` digits, e.g. "004213"."""
    if length < 1:
        raise ValueError("OTP length must be at least 1")
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


def expiry_at(now: datetime, window_minutes: int) -> datetime:
    return now + timedelta(minutes=window_minutes)


def is_expired(expiry: datetime, now: datetime) -> bool:
    """True iff now is strictly past expiry. now == expiry is still valid."""
    return now > expiry
