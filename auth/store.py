"""
auth/store.py -- SQLAlchemy Core persistence layer for credential entities.

Pattern: Repository + Data Mapper. CredentialStore is the repository;
_row_to_account / _row_to_challenge are the mappers. Services and routes never
touch SQL directly, and nothing outside this module mutates these tables.

The store is constructed explicitly (api lifespan, CLI, or test fixture) and
handed to every component that needs it. There is no module-level engine.

Security:
  All queries use bound parameters. No f-strings in SQL.

  OTP single-live-challenge invariant: at most one unused row may exist per
  (account_id, purpose). It is enforced twice:
    1. create_otp_challenge() invalidates prior unused rows and inserts the new
       one inside a single transaction.
    2. A partial UNIQUE index on (account_id, purpose) WHERE is_used = 0 makes
       the database reject a second live row. If two requests race, the loser
       gets IntegrityError, retries, invalidates the winner's row, and inserts
       its own -- the later writer wins and exactly one row stays live.
  Partial indexes exist on SQLite and PostgreSQL; those are the supported
  backends.

  mark_otp_used() is a conditional UPDATE (WHERE is_used = 0). Only one caller
  can observe rowcount == 1, which is what makes OTP consumption exactly-once
  under concurrent verify requests.

Timestamps are fixed-width ISO 8601 UTC strings (microsecond precision) so the
SQL comparisons on expires_at order chronologically on every backend.

Layer rule: no imports from api/ or admin/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import (
    Column,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    create_engine,
    event,
    or_,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import DuplicateEmailError, UnknownRoleError
from auth.hashing import hash_secret
from auth.models import ROLE_DESCRIPTIONS, Account, OTPChallenge, OTPPurpose, Role
from auth.otp import DEFAULT_OTP_LENGTH, expiry_at, generate_otp
from auth.policy import normalize_email

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'opsmind_auth.db'}"

# Attempts at the invalidate-then-insert transaction before giving up. Only a
# pathological number of simultaneous resend requests could exhaust this.
_OTP_INSERT_ATTEMPTS = 3

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_accounts = Table(
    "accounts",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("first_name", String(100), nullable=False),
    Column("last_name", String(100), nullable=False),
    Column("is_verified", Integer, nullable=False, server_default="0"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_roles = Table(
    "roles",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(20), nullable=False, unique=True),
    Column("description", String(255)),
    Column("created_at", String(32), nullable=False),
)

_account_roles = Table(
    "account_roles",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("account_id", String(36), nullable=False, index=True),
    Column("role_id", String(36), nullable=False),
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("account_id", "role_id", name="uq_account_role"),
)

_otp_challenges = Table(
    "otp_challenges",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("account_id", String(36), nullable=False),
    Column("purpose", String(20), nullable=False),
    Column("code_hash", String(255), nullable=False),
    Column("expires_at", String(32), nullable=False, index=True),
    Column("is_used", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)

Index("ix_otp_account_purpose", _otp_challenges.c.account_id, _otp_challenges.c.purpose)
Index(
    "uq_otp_live_challenge",
    _otp_challenges.c.account_id,
    _otp_challenges.c.purpose,
    unique=True,
    sqlite_where=_otp_challenges.c.is_used == 0,
    postgresql_where=_otp_challenges.c.is_used == 0,
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for accounts, role assignments, and OTP challenges.

    Usage:
        store = CredentialStore("sqlite:///:memory:")
        account = store.create_account("a@org.edu", hash_secret("Abc12345!"), "Ada", "Lovelace")
        store.assign_role(account.id, Role.STUDENT)
        code, challenge = store.create_otp_challenge(account.id, OTPPurpose.VERIFICATION)
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)
        self.ensure_roles()

    def ensure_roles(self) -> None:
        """Insert any missing rows of the fixed role set. Safe on every startup."""
        with self.engine.connect() as conn:
            existing = {row.name for row in conn.execute(select(_roles.c.name))}
            for role in Role:
                if role.value in existing:
                    continue
                conn.execute(
                    _roles.insert().values(
                        id=_new_id(),
                        name=role.value,
                        description=ROLE_DESCRIPTIONS[role],
                        created_at=_iso(_utcnow()),
                    )
                )
            conn.commit()

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    # ------------------------------------------------------------------
    # Account queries
    # ------------------------------------------------------------------

    def find_account_by_email(self, email: str) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == normalize_email(email))).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_account_by_id(self, account_id: str) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_account_with_roles(self, account_id: str | None = None, email: str | None = None) -> Account | None:
        """Look up by id or email and resolve the role list. Exactly one key is required."""
        if (account_id is None) == (email is None):
            raise ValueError("find_account_with_roles needs exactly one of account_id or email")
        account = self.find_account_by_id(account_id) if account_id is not None else self.find_account_by_email(email)
        if account is None:
            return None
        account.roles = self.get_roles(account.id)
        return account

    def list_accounts_with_roles(self, is_active: bool | None = None) -> list[Account]:
        """Return accounts newest first, each with its roles resolved in one extra query."""
        query = _accounts.select()
        if is_active is not None:
            query = query.where(_accounts.c.is_active == (1 if is_active else 0))
        with self.engine.connect() as conn:
            rows = conn.execute(query.order_by(_accounts.c.created_at.desc())).fetchall()
            links = conn.execute(
                select(_account_roles.c.account_id, _roles.c.name).join(
                    _roles, _roles.c.id == _account_roles.c.role_id
                )
            ).fetchall()
        roles_by_account: dict[str, list[Role]] = {}
        for link in links:
            roles_by_account.setdefault(link.account_id, []).append(Role(link.name))
        accounts = [_row_to_account(r) for r in rows]
        for account in accounts:
            account.roles = sorted(roles_by_account.get(account.id, []), key=lambda r: r.value)
        return accounts

    def create_account(
        self,
        email: str,
        password_hash: str,
        first_name: str,
        last_name: str,
        is_verified: bool = False,
        is_active: bool = True,
    ) -> Account:
        """Insert a new account and return it.

        Raises DuplicateEmailError if the (normalized) email exists. The UNIQUE
        constraint is the source of truth, so a concurrent signup that slipped
        past the caller's pre-check lands here too.
        """
        account_id = _new_id()
        now = _iso(_utcnow())
        with self.engine.connect() as conn:
            try:
                conn.execute(
                    _accounts.insert().values(
                        id=account_id,
                        email=normalize_email(email),
                        password_hash=password_hash,
                        first_name=first_name,
                        last_name=last_name,
                        is_verified=1 if is_verified else 0,
                        is_active=1 if is_active else 0,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
            except IntegrityError as exc:
                conn.rollback()
                raise DuplicateEmailError() from exc
        created = self.find_account_by_id(account_id)
        if created is None:
            raise RuntimeError(f"account {account_id} missing after insert")
        return created

    def set_verified(self, account_id: str, verified: bool) -> bool:
        """Set is_verified. Returns True if the account exists. Idempotent."""
        return self._update_account(account_id, is_verified=1 if verified else 0)

    def set_active(self, account_id: str, active: bool) -> bool:
        """Set is_active. Returns True if the account exists. Idempotent."""
        return self._update_account(account_id, is_active=1 if active else 0)

    def _update_account(self, account_id: str, **fields) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update().where(_accounts.c.id == account_id).values(updated_at=_iso(_utcnow()), **fields)
            )
            conn.commit()
        return result.rowcount > 0

    def delete_account(self, account_id: str) -> bool:
        """Remove an account with its role links and OTP rows. True if it existed."""
        with self.engine.connect() as conn:
            conn.execute(_account_roles.delete().where(_account_roles.c.account_id == account_id))
            conn.execute(_otp_challenges.delete().where(_otp_challenges.c.account_id == account_id))
            result = conn.execute(_accounts.delete().where(_accounts.c.id == account_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def assign_role(self, account_id: str, role: Role | str) -> None:
        """Link account to role. No-op if already assigned.

        Raises UnknownRoleError for names outside the fixed set.
        """
        try:
            parsed = Role.parse(role)
        except ValueError as exc:
            raise UnknownRoleError(str(role)) from exc

        with self.engine.connect() as conn:
            role_id = conn.execute(select(_roles.c.id).where(_roles.c.name == parsed.value)).scalar()
            if role_id is None:
                raise UnknownRoleError(parsed.value)
            existing = conn.execute(
                select(_account_roles.c.id).where(
                    (_account_roles.c.account_id == account_id) & (_account_roles.c.role_id == role_id)
                )
            ).fetchone()
            if existing is not None:
                return
            try:
                conn.execute(
                    _account_roles.insert().values(
                        id=_new_id(),
                        account_id=account_id,
                        role_id=role_id,
                        created_at=_iso(_utcnow()),
                    )
                )
                conn.commit()
            except IntegrityError:
                # A concurrent assign of the same pair won. The link exists either way.
                conn.rollback()

    def get_roles(self, account_id: str) -> list[Role]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_roles.c.name)
                .join(_account_roles, _roles.c.id == _account_roles.c.role_id)
                .where(_account_roles.c.account_id == account_id)
                .order_by(_roles.c.name)
            ).fetchall()
        return [Role(r.name) for r in rows]

    # ------------------------------------------------------------------
    # OTP challenges
    # ------------------------------------------------------------------

    def create_otp_challenge(
        self,
        account_id: str,
        purpose: OTPPurpose,
        length: int = DEFAULT_OTP_LENGTH,
        expiry_minutes: int = 5,
        now: datetime | None = None,
    ) -> tuple[str, OTPChallenge]:
        """Issue a new challenge and return (plaintext_code, record).

        Prior unused challenges for the same (account, purpose) are invalidated
        in the same transaction as the insert. The plaintext is hashed before
        the transaction opens so the bcrypt cost is not paid while holding locks.
        """
        code = generate_otp(length)
        code_hash = hash_secret(code)
        issued = now or _utcnow()
        challenge = OTPChallenge(
            id=_new_id(),
            account_id=account_id,
            purpose=purpose,
            code_hash=code_hash,
            expires_at=expiry_at(issued, expiry_minutes),
            is_used=False,
            created_at=_iso(issued),
        )

        for attempt in range(1, _OTP_INSERT_ATTEMPTS + 1):
            with self.engine.connect() as conn:
                try:
                    conn.execute(
                        _otp_challenges.update()
                        .where(
                            (_otp_challenges.c.account_id == account_id)
                            & (_otp_challenges.c.purpose == purpose.value)
                            & (_otp_challenges.c.is_used == 0)
                        )
                        .values(is_used=1)
                    )
                    conn.execute(
                        _otp_challenges.insert().values(
                            id=challenge.id,
                            account_id=account_id,
                            purpose=purpose.value,
                            code_hash=code_hash,
                            expires_at=_iso(challenge.expires_at),
                            is_used=0,
                            created_at=challenge.created_at,
                        )
                    )
                    conn.commit()
                    break
                except IntegrityError:
                    conn.rollback()
                    if attempt == _OTP_INSERT_ATTEMPTS:
                        raise
        return code, challenge

    def find_latest_valid_otp(
        self, account_id: str, purpose: OTPPurpose, now: datetime | None = None
    ) -> OTPChallenge | None:
        """Return the newest unused, unexpired challenge for the pair, or None."""
        cutoff = _iso(now or _utcnow())
        with self.engine.connect() as conn:
            row = conn.execute(
                _otp_challenges.select()
                .where(
                    (_otp_challenges.c.account_id == account_id)
                    & (_otp_challenges.c.purpose == purpose.value)
                    & (_otp_challenges.c.is_used == 0)
                    & (_otp_challenges.c.expires_at > cutoff)
                )
                .order_by(_otp_challenges.c.created_at.desc())
                .limit(1)
            ).fetchone()
        return _row_to_challenge(row) if row is not None else None

    def mark_otp_used(self, challenge_id: str) -> bool:
        """Consume a challenge. True only for the one caller that flipped it."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _otp_challenges.update()
                .where((_otp_challenges.c.id == challenge_id) & (_otp_challenges.c.is_used == 0))
                .values(is_used=1)
            )
            conn.commit()
        return result.rowcount > 0

    def purge_expired_or_used_otps(self, now: datetime | None = None) -> int:
        """Delete expired or consumed challenges. Returns the number of rows removed.

        Only rows no reader could accept are deleted, so the sweep is safe to
        run alongside issue and verify.
        """
        cutoff = _iso(now or _utcnow())
        with self.engine.connect() as conn:
            result = conn.execute(
                _otp_challenges.delete().where(
                    or_(_otp_challenges.c.expires_at < cutoff, _otp_challenges.c.is_used == 1)
                )
            )
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        first_name=row.first_name,
        last_name=row.last_name,
        is_verified=bool(row.is_verified),
        is_active=bool(row.is_active),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_challenge(row) -> OTPChallenge:
    return OTPChallenge(
        id=row.id,
        account_id=row.account_id,
        purpose=OTPPurpose(row.purpose),
        code_hash=row.code_hash,
        expires_at=datetime.fromisoformat(row.expires_at),
        is_used=bool(row.is_used),
        created_at=row.created_at,
    )
