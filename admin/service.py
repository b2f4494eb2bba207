"""
admin/service.py -- Administrator operations on accounts, technicians, buildings.

Every method assumes the caller already passed require_roles(Role.ADMIN); the
service itself enforces only the data-level safety rules:

  - ADMIN-tagged accounts can never be deactivated or deleted here.
  - An administrator cannot delete their own account.
  - Administrator-created accounts obey the same password policy as signup,
    but not the organization email-domain rule (staff mailboxes may differ).

Account writes go through CredentialStore; technician and building writes go
through AdminStore. Expected failures raise DomainError subclasses.
"""

from __future__ import annotations

import logging

from admin.errors import DuplicateBuildingCodeError, DuplicateEmployeeIdError, UnknownBuildingError
from admin.models import Building, Technician, TechnicianLevel
from admin.store import AdminStore
from auth.errors import DuplicateEmailError, NotFoundError, ProtectedAccountError, UnknownRoleError, WeakPasswordError
from auth.hashing import hash_secret
from auth.models import Account, Role
from auth.policy import normalize_email, password_problems
from auth.store import CredentialStore

logger = logging.getLogger("opsmind.admin")


class AdminService:
    def __init__(self, credentials: CredentialStore, admin_store: AdminStore) -> None:
        self.credentials = credentials
        self.admin_store = admin_store

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        role: Role | str,
        is_verified: bool = True,
        is_active: bool = True,
    ) -> Account:
        """Create an account with any role. Pre-verified unless told otherwise."""
        try:
            parsed_role = Role.parse(role)
        except ValueError as exc:
            raise UnknownRoleError(str(role)) from exc
        account = self._create_account(email, password, first_name, last_name, is_verified, is_active)
        self.credentials.assign_role(account.id, parsed_role)
        logger.info("Admin created account id=%s role=%s", account.id, parsed_role.value)
        return self._reload(account.id)

    def list_users(self) -> list[Account]:
        return self.credentials.list_accounts_with_roles()

    def update_user_status(self, account_id: str, is_active: bool) -> tuple[str, Account]:
        """Activate or deactivate an account. Returns (message, updated account)."""
        account = self.credentials.find_account_with_roles(account_id=account_id)
        if account is None:
            raise NotFoundError("User not found")
        if account.has_role(Role.ADMIN) and not is_active:
            raise ProtectedAccountError("Cannot deactivate admin users")

        self.credentials.set_active(account_id, is_active)
        state = "activated" if is_active else "deactivated"
        logger.info("Account %s %s", account_id, state)
        return f"User {state} successfully", self._reload(account_id)

    def delete_user(self, account_id: str, acting_account_id: str) -> None:
        account = self.credentials.find_account_with_roles(account_id=account_id)
        if account is None:
            raise NotFoundError("User not found")
        if account_id == acting_account_id:
            raise ProtectedAccountError("You cannot delete your own account")
        if account.has_role(Role.ADMIN):
            raise ProtectedAccountError("Cannot delete admin users")

        self.admin_store.delete_technician_for_account(account_id)
        self.credentials.delete_account(account_id)
        logger.info("Account %s deleted by %s", account_id, acting_account_id)

    # ------------------------------------------------------------------
    # Technicians
    # ------------------------------------------------------------------

    def create_technician(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        employee_id: str | None = None,
        department: str | None = None,
        specialization: str | None = None,
        level: TechnicianLevel = TechnicianLevel.JUNIOR,
        building_ids: list[str] | None = None,
    ) -> Technician:
        """Create a pre-verified TECHNICIAN account plus its profile.

        All checks run before anything is written. The first building id becomes
        the primary assignment.
        """
        building_ids = list(dict.fromkeys(building_ids or []))
        problems = password_problems(password)
        if problems:
            raise WeakPasswordError(f"Password validation failed: {', '.join(problems)}", errors=problems)
        if self.credentials.find_account_by_email(email) is not None:
            raise DuplicateEmailError()
        if employee_id and self.admin_store.find_technician_by_employee_id(employee_id) is not None:
            raise DuplicateEmployeeIdError()
        for building_id in building_ids:
            if self.admin_store.find_building_by_id(building_id) is None:
                raise UnknownBuildingError(building_id)

        account = self._create_account(email, password, first_name, last_name, is_verified=True, is_active=True)
        self.credentials.assign_role(account.id, Role.TECHNICIAN)
        try:
            technician = self.admin_store.create_technician(
                account.id,
                employee_id=employee_id,
                department=department,
                specialization=specialization,
                level=level,
            )
        except DuplicateEmployeeIdError:
            # Lost a race on employee_id after the pre-check; undo the account.
            self.credentials.delete_account(account.id)
            raise

        for index, building_id in enumerate(building_ids):
            self.admin_store.assign_building(technician.id, building_id, is_primary=index == 0)

        logger.info("Technician created account=%s technician=%s", account.id, technician.id)
        return self._hydrate_technician(technician, account)

    def list_technicians(self) -> list[Technician]:
        accounts = {a.id: a for a in self.credentials.list_accounts_with_roles()}
        technicians = []
        for technician in self.admin_store.list_technicians():
            account = accounts.get(technician.account_id)
            if account is None:
                continue
            technicians.append(self._hydrate_technician(technician, account))
        return technicians

    # ------------------------------------------------------------------
    # Buildings
    # ------------------------------------------------------------------

    def create_building(self, name: str, code: str, address: str | None = None) -> Building:
        if self.admin_store.find_building_by_code(code) is not None:
            raise DuplicateBuildingCodeError()
        building = self.admin_store.create_building(name, code, address)
        logger.info("Building created code=%s", building.code)
        return building

    def list_buildings(self) -> list[Building]:
        return self.admin_store.list_buildings()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _create_account(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        is_verified: bool,
        is_active: bool,
    ) -> Account:
        problems = password_problems(password)
        if problems:
            raise WeakPasswordError(f"Password validation failed: {', '.join(problems)}", errors=problems)
        email = normalize_email(email)
        if self.credentials.find_account_by_email(email) is not None:
            raise DuplicateEmailError()
        return self.credentials.create_account(
            email=email,
            password_hash=hash_secret(password),
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            is_verified=is_verified,
            is_active=is_active,
        )

    def _reload(self, account_id: str) -> Account:
        account = self.credentials.find_account_with_roles(account_id=account_id)
        if account is None:
            raise NotFoundError("User not found")
        return account

    def _hydrate_technician(self, technician: Technician, account: Account) -> Technician:
        technician.email = account.email
        technician.first_name = account.first_name
        technician.last_name = account.last_name
        technician.is_active = account.is_active
        technician.buildings = self.admin_store.get_technician_buildings(technician.id)
        return technician
