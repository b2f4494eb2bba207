"""
auth/hashing.py -- One-way salted hashing for passwords and OTP codes.

bcrypt directly, no passlib wrapper: passlib's wrap-bug detection creates a
password longer than 72 bytes, which bcrypt 4.x rejects with an explicit error.

Both secrets use the same cost factor. A 6-digit OTP has only 10^6 candidates,
so the slow hash is what keeps a leaked otp_challenges table from being
reversed in seconds.

The work is CPU-bound (~250ms at 12 rounds). Route handlers that reach it are
plain `def` so FastAPI runs them in its threadpool instead of on the event loop.
"""

from __future__ import annotations

import bcrypt

BCRYPT_ROUNDS = 12

# bcrypt only reads the first 72 bytes; bcrypt >= 5 raises on longer input.
MAX_SECRET_BYTES = 72


def hash_secret(secret: str) -> str:
    """Return a bcrypt hash of secret. Errors propagate to the caller."""
    return bcrypt.hashpw(secret.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_secret(secret: str, digest: str) -> bool:
    """Return True if secret matches digest.

    Malformed digests and over-long secrets verify as False rather than raising:
    a login attempt with a 500-character password is a wrong password, not a 500.
    """
    try:
        return bcrypt.checkpw(secret.encode("utf-8"), digest.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones. Verify against it whenever the account does not
# exist so response time does not reveal which emails are registered.
DUMMY_HASH: str = hash_secret("opsmind_timing_dummy")


def burn_hash_time(secret: str) -> None:
    """Spend one bcrypt comparison worth of time and discard the result."""
    verify_secret(secret, DUMMY_HASH)
