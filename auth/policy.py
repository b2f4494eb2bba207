"""
auth/policy.py -- Password strength and organization email rules.

Pure functions, no I/O. The orchestrator and the admin service both call
password_problems() so self-registered and administrator-created accounts are
held to the same policy.
"""

from __future__ import annotations

import re

from auth.hashing import MAX_SECRET_BYTES

MIN_PASSWORD_LENGTH = 8

_SPECIAL_CHARS = re.compile(r"[!@#$%^&*(),.?\":{}|<>]")
EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"


def normalize_email(email: str) -> str:
    return email.strip().lower()


def email_domain(email: str) -> str:
    """Return the lower-cased part after the last '@', or "" if there is none."""
    _, sep, domain = normalize_email(email).rpartition("@")
    return domain if sep else ""


def is_organization_email(email: str, allowed_domains: list[str]) -> bool:
    """Exact domain match only -- sub.org.edu is NOT allowed when org.edu is."""
    domain = email_domain(email)
    return bool(domain) and domain in {d.lower().lstrip("@") for d in allowed_domains}


def password_problems(password: str) -> list[str]:
    """Return every rule the password breaks. An empty list means it passes."""
    problems: list[str] = []
    if len(password) < MIN_PASSWORD_LENGTH:
        problems.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if len(password.encode("utf-8")) > MAX_SECRET_BYTES:
        problems.append(f"Password must not exceed {MAX_SECRET_BYTES} bytes")
    if not re.search(r"[A-Z]", password):
        problems.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        problems.append("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", password):
        problems.append("Password must contain at least one number")
    if not _SPECIAL_CHARS.search(password):
        problems.append("Password must contain at least one special character")
    return problems
