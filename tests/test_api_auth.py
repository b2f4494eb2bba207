"""
tests/test_api_auth.py -- HTTP integration tests for api/routes/auth.py.

Covers:
  - full flow: signup -> verify VERIFICATION -> verify LOGIN -> token -> /auth/me
  - login returns an OTP prompt, never a token, with Cache-Control: no-store
  - unknown email and wrong password produce byte-identical 401 bodies
  - signup refusals (ADMIN role, foreign domain, weak password, duplicate)
  - malformed bodies -> 400 validation_failed with itemized field errors
  - resend-otp answers the same 200 for known and unknown emails
  - deactivation by an administrator blocks an already-issued token
  - camelCase JSON fields, no password hash anywhere in responses
"""

from __future__ import annotations

STRONG_PASSWORD = "Abc12345!"

EMAIL = "ada@org.edu"


def _signup(api, email: str = EMAIL, role: str = "STUDENT", password: str = STRONG_PASSWORD):
    return api.client.post(
        "/auth/signup",
        json={"email": email, "password": password, "firstName": "Ada", "lastName": "Lovelace", "role": role},
    )


def _verify(api, code: str, purpose: str, email: str = EMAIL):
    return api.client.post("/auth/verify-otp", json={"email": email, "otp": code, "purpose": purpose})


def _full_login(api, email: str = EMAIL) -> str:
    _signup(api, email=email)
    _verify(api, api.mailer.last_code(email, "VERIFICATION"), "VERIFICATION", email=email)
    response = _verify(api, api.mailer.last_code(email, "LOGIN"), "LOGIN", email=email)
    return response.json()["token"]


class TestSignupEndpoint:
    def test_signup_created(self, api) -> None:
        """201 with requiresOTP and a camelCase user, no token, no hash."""
        response = _signup(api)
        assert response.status_code == 201
        body = response.json()
        assert body["requiresOTP"] is True
        assert body["token"] is None
        assert body["user"]["email"] == EMAIL
        assert body["user"]["firstName"] == "Ada"
        assert body["user"]["isVerified"] is False
        assert body["user"]["roles"] == ["STUDENT"]
        assert "password" not in response.text.lower()
        assert api.mailer.sent[-1][2] == "VERIFICATION"

    def test_signup_admin_role_refused(self, api) -> None:
        """Self-registering as ADMIN is a 400 with role_not_self_assignable."""
        response = _signup(api, role="ADMIN")
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "role_not_self_assignable"
        assert api.store.find_account_by_email(EMAIL) is None

    def test_signup_foreign_domain_refused(self, api) -> None:
        """Only organization emails may self-register."""
        response = _signup(api, email="ada@gmail.com")
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "domain_not_allowed"

    def test_signup_weak_password_itemized(self, api) -> None:
        """The error envelope lists every broken password rule."""
        response = _signup(api, password="abcdefgh")
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "weak_password"
        assert "Password must contain at least one uppercase letter" in error["errors"]
        assert "Password must contain at least one number" in error["errors"]

    def test_signup_duplicate(self, api) -> None:
        """A second signup for the same email is refused."""
        _signup(api)
        response = _signup(api)
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "User with this email already exists"

    def test_signup_missing_fields(self, api) -> None:
        """Missing and malformed fields -> 400 validation_failed, one line per problem."""
        response = api.client.post("/auth/signup", json={"email": "not-an-email", "role": "STUDENT"})
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "validation_failed"
        fields = {line.split(":")[0] for line in error["errors"]}
        assert {"email", "password", "firstName", "lastName"} <= fields

    def test_signup_unknown_role_is_validation_error(self, api) -> None:
        """A role outside the closed set never reaches the service."""
        response = _signup(api, role="SUPERUSER")
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_failed"


class TestLoginEndpoint:
    def test_full_flow(self, api) -> None:
        """signup -> VERIFICATION -> LOGIN returns a token accepted by /auth/me."""
        _signup(api)
        verified = _verify(api, api.mailer.last_code(EMAIL, "VERIFICATION"), "VERIFICATION")
        assert verified.status_code == 200
        assert verified.json()["requiresOTP"] is True
        assert verified.json()["token"] is None

        done = _verify(api, api.mailer.last_code(EMAIL, "LOGIN"), "LOGIN")
        assert done.status_code == 200
        assert done.headers["cache-control"] == "no-store"
        body = done.json()
        assert body["message"] == "Login successful"
        assert body["requiresOTP"] is False
        assert body["user"]["roles"] == ["STUDENT"]
        assert body["user"]["isVerified"] is True

        me = api.client.get("/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
        assert me.status_code == 200
        assert me.json()["email"] == EMAIL

    def test_login_sends_otp_not_token(self, api) -> None:
        """A correct password yields requiresOTP and a mailed LOGIN code."""
        _full_login(api)
        response = api.client.post("/auth/login", json={"email": EMAIL, "password": STRONG_PASSWORD})
        assert response.status_code == 200
        assert response.headers["cache-control"] == "no-store"
        assert response.json()["requiresOTP"] is True
        assert response.json()["token"] is None
        assert api.mailer.sent[-1][2] == "LOGIN"

    def test_enumeration_resistant_401(self, api) -> None:
        """Unknown email and wrong password return identical 401 bodies."""
        _signup(api)
        unknown = api.client.post("/auth/login", json={"email": "ghost@org.edu", "password": STRONG_PASSWORD})
        wrong = api.client.post("/auth/login", json={"email": EMAIL, "password": "Wrong1234!"})
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json()
        assert unknown.json()["error"]["message"] == "Invalid email or password"

    def test_unverified_login_resends_verification(self, api) -> None:
        """Login before verification sends a fresh VERIFICATION code."""
        _signup(api)
        response = api.client.post("/auth/login", json={"email": EMAIL, "password": STRONG_PASSWORD})
        assert response.status_code == 200
        assert "verify your account" in response.json()["message"]
        assert [purpose for _, _, purpose in api.mailer.sent] == ["VERIFICATION", "VERIFICATION"]

    def test_wrong_otp(self, api) -> None:
        """A wrong code is a 401 with code otp_invalid."""
        _signup(api)
        code = api.mailer.last_code(EMAIL)
        wrong = "000000" if code != "000000" else "111111"
        response = _verify(api, wrong, "VERIFICATION")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "otp_invalid"
        assert response.json()["error"]["message"] == "Invalid OTP"

    def test_otp_must_be_digits(self, api) -> None:
        """Non-numeric OTPs fail validation before any lookup."""
        response = _verify(api, "abcdef", "LOGIN")
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_failed"


class TestResendEndpoint:
    def test_same_response_known_and_unknown(self, api) -> None:
        """resend-otp is indistinguishable for registered and unregistered emails."""
        _signup(api)
        known = api.client.post("/auth/resend-otp", json={"email": EMAIL, "purpose": "VERIFICATION"})
        unknown = api.client.post("/auth/resend-otp", json={"email": "ghost@org.edu", "purpose": "VERIFICATION"})
        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json() == {"message": "If the email exists, an OTP will be sent."}
        assert len(api.mailer.sent) == 2


class TestSessionEndpoint:
    def test_me_requires_token(self, api) -> None:
        """/auth/me without a bearer token is 401 with the standard envelope."""
        response = api.client.get("/auth/me")
        assert response.status_code == 401
        assert response.json()["error"]["message"] == "No token provided"

    def test_me_rejects_garbage(self, api) -> None:
        """A malformed token is 401 "Invalid or expired token"."""
        response = api.client.get("/auth/me", headers={"Authorization": "Bearer nonsense"})
        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid or expired token"

    def test_deactivation_blocks_existing_token(self, api) -> None:
        """Once an administrator deactivates the account, its token stops working."""
        token = _full_login(api)
        headers = {"Authorization": f"Bearer {token}"}
        assert api.client.get("/auth/me", headers=headers).status_code == 200

        account = api.store.find_account_by_email(EMAIL)
        patched = api.client.patch(
            f"/admin/users/{account.id}/status", json={"isActive": False}, headers=api.admin_headers
        )
        assert patched.status_code == 200

        response = api.client.get("/auth/me", headers=headers)
        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Account is deactivated"

    def test_deactivated_login(self, api) -> None:
        """A deactivated account with the correct password is told so; no OTP is sent."""
        _full_login(api)
        account = api.store.find_account_by_email(EMAIL)
        api.store.set_active(account.id, False)
        sent_before = len(api.mailer.sent)
        response = api.client.post("/auth/login", json={"email": EMAIL, "password": STRONG_PASSWORD})
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "account_deactivated"
        assert len(api.mailer.sent) == sent_before
