"""
tests/test_api_admin.py -- HTTP integration tests for api/routes/admin.py.

Covers:
  - every /admin route: 401 without a token, 403 for a non-admin token
  - POST /admin/users with any role; pre-verified; duplicate email; weak password
  - GET /admin/users newest first with roles
  - PATCH status: activate/deactivate, ADMIN accounts cannot be deactivated
  - DELETE: removes the account, refuses self and ADMIN targets, 404 unknown
  - technicians: profile + building links (first is primary), duplicate
    employee id, unknown building leaves nothing behind
  - buildings: create (code upper-cased), duplicate code, list by name
"""

from __future__ import annotations

import pytest

from auth.models import Role

PASSWORD = "Abc12345!"

ADMIN_ROUTES = [
    ("get", "/admin/users"),
    ("post", "/admin/users"),
    ("patch", "/admin/users/some-id/status"),
    ("delete", "/admin/users/some-id"),
    ("get", "/admin/technicians"),
    ("post", "/admin/technicians"),
    ("get", "/admin/buildings"),
    ("post", "/admin/buildings"),
]


def _user_payload(email: str, role: str = "DOCTOR", **extra) -> dict:
    payload = {"email": email, "password": PASSWORD, "firstName": "Grace", "lastName": "Hopper", "role": role}
    payload.update(extra)
    return payload


def _create_building(api, code: str, name: str = "Main Building") -> dict:
    response = api.client.post(
        "/admin/buildings", json={"name": name, "code": code, "address": "Campus"}, headers=api.admin_headers
    )
    assert response.status_code == 201
    return response.json()["building"]


def _headers_for(api, account) -> dict[str, str]:
    token = api.client.app.state.token_issuer.issue(account.id, account.email, account.roles)
    return {"Authorization": f"Bearer {token}"}


class TestAccessControl:
    @pytest.mark.parametrize("method,path", ADMIN_ROUTES)
    def test_requires_token(self, api, method: str, path: str) -> None:
        """No token -> 401 on every admin route, before body validation."""
        response = getattr(api.client, method)(path)
        assert response.status_code == 401

    @pytest.mark.parametrize("method,path", ADMIN_ROUTES)
    def test_non_admin_forbidden(self, api, make_account, method: str, path: str) -> None:
        """A valid non-admin token -> 403 on every admin route."""
        student = make_account(api.store, "student@org.edu", Role.STUDENT)
        response = getattr(api.client, method)(path, headers=_headers_for(api, student))
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "forbidden"


class TestUsers:
    @pytest.mark.parametrize("role", ["ADMIN", "TECHNICIAN", "DOCTOR", "STUDENT"])
    def test_create_any_role(self, api, role: str) -> None:
        """Administrators may create accounts with any role; they start verified and active."""
        response = api.client.post(
            "/admin/users", json=_user_payload("grace@staff.example", role=role), headers=api.admin_headers
        )
        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "User created successfully"
        assert body["user"]["roles"] == [role]
        assert body["user"]["isVerified"] is True
        assert body["user"]["isActive"] is True

    def test_create_duplicate_email(self, api) -> None:
        """An email already registered is refused."""
        payload = _user_payload("grace@org.edu")
        api.client.post("/admin/users", json=payload, headers=api.admin_headers)
        response = api.client.post("/admin/users", json=payload, headers=api.admin_headers)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "email_taken"

    def test_create_weak_password(self, api) -> None:
        """Administrator-created accounts follow the password policy."""
        response = api.client.post(
            "/admin/users", json=_user_payload("grace@org.edu", password="short"), headers=api.admin_headers
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "weak_password"

    def test_list_users(self, api, make_account) -> None:
        """All accounts are listed newest first, roles included."""
        make_account(api.store, "student@org.edu", Role.STUDENT)
        response = api.client.get("/admin/users", headers=api.admin_headers)
        assert response.status_code == 200
        users = response.json()
        assert [u["email"] for u in users] == ["student@org.edu", "root@opsmind.com"]
        assert users[0]["roles"] == ["STUDENT"]
        assert "passwordHash" not in users[0]

    def test_deactivate_and_reactivate(self, api, make_account) -> None:
        """PATCH status flips is_active and reports what happened."""
        doctor = make_account(api.store, "doc@org.edu", Role.DOCTOR)
        off = api.client.patch(f"/admin/users/{doctor.id}/status", json={"isActive": False}, headers=api.admin_headers)
        assert off.status_code == 200
        assert off.json()["message"] == "User deactivated successfully"
        assert off.json()["user"]["isActive"] is False

        on = api.client.patch(f"/admin/users/{doctor.id}/status", json={"isActive": True}, headers=api.admin_headers)
        assert on.json()["message"] == "User activated successfully"
        assert api.store.find_account_by_id(doctor.id).is_active is True

    def test_admin_cannot_be_deactivated(self, api) -> None:
        """Deactivating an ADMIN account is refused and the flag is unchanged."""
        response = api.client.patch(
            f"/admin/users/{api.admin_id}/status", json={"isActive": False}, headers=api.admin_headers
        )
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Cannot deactivate admin users"
        assert api.store.find_account_by_id(api.admin_id).is_active is True

    def test_status_unknown_user(self, api) -> None:
        """Unknown ids are 404."""
        response = api.client.patch("/admin/users/missing/status", json={"isActive": False}, headers=api.admin_headers)
        assert response.status_code == 404

    def test_delete_user(self, api, make_account) -> None:
        """DELETE removes the account; a second DELETE is 404."""
        doctor = make_account(api.store, "doc@org.edu", Role.DOCTOR)
        response = api.client.delete(f"/admin/users/{doctor.id}", headers=api.admin_headers)
        assert response.status_code == 200
        assert response.json()["message"] == "User deleted successfully"
        assert api.store.find_account_by_id(doctor.id) is None
        assert api.client.delete(f"/admin/users/{doctor.id}", headers=api.admin_headers).status_code == 404

    def test_cannot_delete_self(self, api) -> None:
        """An administrator cannot delete their own account."""
        response = api.client.delete(f"/admin/users/{api.admin_id}", headers=api.admin_headers)
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "You cannot delete your own account"

    def test_cannot_delete_other_admin(self, api, make_account) -> None:
        """ADMIN accounts are protected from deletion."""
        other = make_account(api.store, "second-admin@opsmind.com", Role.ADMIN)
        response = api.client.delete(f"/admin/users/{other.id}", headers=api.admin_headers)
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Cannot delete admin users"
        assert api.store.find_account_by_id(other.id) is not None


class TestTechnicians:
    def test_create_with_buildings(self, api) -> None:
        """The account gets TECHNICIAN; the first building is primary."""
        main = _create_building(api, "MAIN")
        eng = _create_building(api, "ENG", name="Engineering Building")
        response = api.client.post(
            "/admin/technicians",
            json={
                **_user_payload("tech@org.edu"),
                "employeeId": "EMP-001",
                "department": "IT",
                "level": "SENIOR",
                "buildingIds": [eng["id"], main["id"]],
            },
            headers=api.admin_headers,
        )
        assert response.status_code == 201
        technician = response.json()["technician"]
        assert technician["employeeId"] == "EMP-001"
        assert technician["level"] == "SENIOR"
        assert [b["code"] for b in technician["buildings"]] == ["ENG", "MAIN"]
        account = api.store.find_account_with_roles(account_id=technician["userId"])
        assert account.roles == [Role.TECHNICIAN]
        assert account.is_verified is True

        listed = api.client.get("/admin/technicians", headers=api.admin_headers).json()
        assert [t["email"] for t in listed] == ["tech@org.edu"]

    def test_duplicate_employee_id(self, api) -> None:
        """A second technician with the same employee id is refused and no account is created."""
        api.client.post(
            "/admin/technicians", json={**_user_payload("one@org.edu"), "employeeId": "EMP-1"}, headers=api.admin_headers
        )
        response = api.client.post(
            "/admin/technicians", json={**_user_payload("two@org.edu"), "employeeId": "EMP-1"}, headers=api.admin_headers
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "employee_id_taken"
        assert api.store.find_account_by_email("two@org.edu") is None

    def test_unknown_building(self, api) -> None:
        """An unknown building id is refused before anything is written."""
        response = api.client.post(
            "/admin/technicians",
            json={**_user_payload("tech@org.edu"), "buildingIds": ["no-such-building"]},
            headers=api.admin_headers,
        )
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Building with ID no-such-building not found"
        assert api.store.find_account_by_email("tech@org.edu") is None

    def test_delete_technician_account(self, api) -> None:
        """Deleting a technician's account also removes the profile."""
        created = api.client.post(
            "/admin/technicians", json=_user_payload("tech@org.edu"), headers=api.admin_headers
        ).json()["technician"]
        api.client.delete(f"/admin/users/{created['userId']}", headers=api.admin_headers)
        assert api.client.get("/admin/technicians", headers=api.admin_headers).json() == []


class TestBuildings:
    def test_create_and_list(self, api) -> None:
        """Codes are upper-cased; the list is ordered by name."""
        _create_building(api, "sci", name="Science Building")
        _create_building(api, "LIB", name="Library")
        response = api.client.get("/admin/buildings", headers=api.admin_headers)
        assert response.status_code == 200
        assert [(b["name"], b["code"]) for b in response.json()] == [
            ("Library", "LIB"),
            ("Science Building", "SCI"),
        ]

    def test_duplicate_code(self, api) -> None:
        """Building codes are unique regardless of case."""
        _create_building(api, "MAIN")
        response = api.client.post(
            "/admin/buildings", json={"name": "Other", "code": "main"}, headers=api.admin_headers
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "building_code_taken"

    def test_invalid_code(self, api) -> None:
        """Codes must be alphanumeric."""
        response = api.client.post(
            "/admin/buildings", json={"name": "Other", "code": "A B!"}, headers=api.admin_headers
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_failed"
