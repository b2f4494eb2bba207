"""
admin/seed.py -- Idempotent bootstrap data.

Run at every API startup and by `python main.py seed`. Each step checks before
it writes, so re-running never duplicates rows or resets a changed password.

  roles      the fixed four-role set (CredentialStore.ensure_roles)
  admin      one ADMIN account from ADMIN_EMAIL / ADMIN_PASSWORD, pre-verified
  buildings  the default campus buildings, matched by code
"""

from __future__ import annotations

import logging

from admin.store import AdminStore
from auth.hashing import hash_secret
from auth.models import Role
from auth.store import CredentialStore
from core.config import Settings

logger = logging.getLogger("opsmind.seed")

DEFAULT_BUILDINGS: list[tuple[str, str, str]] = [
    ("Main Building", "MAIN", "Campus Main Entrance"),
    ("Engineering Building", "ENG", "East Wing"),
    ("Science Building", "SCI", "West Wing"),
    ("Library", "LIB", "Central Campus"),
    ("Administration", "ADM", "North Entrance"),
]


def seed_admin(credentials: CredentialStore, email: str, password: str) -> bool:
    """Create the administrator account if missing. Returns True if created."""
    existing = credentials.find_account_by_email(email)
    if existing is not None:
        credentials.assign_role(existing.id, Role.ADMIN)
        return False
    account = credentials.create_account(
        email=email,
        password_hash=hash_secret(password),
        first_name="System",
        last_name="Admin",
        is_verified=True,
    )
    credentials.assign_role(account.id, Role.ADMIN)
    logger.warning("Default administrator %s created -- change its password in production", email)
    return True


def seed_buildings(admin_store: AdminStore) -> int:
    """Insert any default building whose code is missing. Returns the number inserted."""
    created = 0
    for name, code, address in DEFAULT_BUILDINGS:
        if admin_store.find_building_by_code(code) is not None:
            continue
        admin_store.create_building(name, code, address)
        created += 1
    return created


def seed_all(credentials: CredentialStore, admin_store: AdminStore, settings: Settings) -> dict[str, int]:
    credentials.ensure_roles()
    admin_created = seed_admin(credentials, settings.admin_email, settings.admin_password)
    buildings_created = seed_buildings(admin_store)
    summary = {"roles": len(Role), "admin_created": int(admin_created), "buildings_created": buildings_created}
    logger.info("Seed complete: %s", summary)
    return summary
