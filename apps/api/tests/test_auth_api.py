"""Authentication and profile API tests."""

from __future__ import annotations

import os
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from dealflow.core.config import get_settings
from dealflow.core.tokens import TokenType
from dealflow.main import create_app
from dealflow.schemas.auth import Role
from dealflow.services.auth import AuthService


class _SettingsEnvCase(unittest.TestCase):
    _env_keys = (
        "DEALFLOW_IDENTITY_PROVIDER",
        "DEALFLOW_JWT_SECRET",
        "DEALFLOW_CALLBACK_SECRET",
        "DEALFLOW_MOCK_PROVISION_DELAY_SECONDS",
    )

    def setUp(self) -> None:
        self._old_env = {k: os.environ.get(k) for k in self._env_keys}
        os.environ["DEALFLOW_IDENTITY_PROVIDER"] = "mock"
        os.environ["DEALFLOW_JWT_SECRET"] = "test-jwt-secret-that-is-long-enough-0123"
        os.environ["DEALFLOW_CALLBACK_SECRET"] = "test-callback-secret"
        os.environ["DEALFLOW_MOCK_PROVISION_DELAY_SECONDS"] = "0"
        get_settings.cache_clear()
        self.app = create_app()
        self.client = TestClient(self.app)

    def tearDown(self) -> None:
        for key, value in self._old_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        get_settings.cache_clear()

    def _register(self, email: str = "a@x.com", password: str = "pw", **extra):
        return self.client.post("/api/v1/auth/register", json={"email": email, "password": password, **extra})

    @staticmethod
    def _bearer(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    def _make_admin(self) -> str:
        self._register(email="root@x.com", password="pw")
        store = self.app.state.store
        store.update_principal(store.find_principal_by_email("root@x.com").id, role=Role.ADMIN)
        login = self.client.post("/api/v1/auth/login", json={"email": "root@x.com", "password": "pw"})
        return login.json()["accessToken"]


class AuthLifecycleApiTests(_SettingsEnvCase):
    def test_register_returns_tokens_profile_and_message(self) -> None:
        response = self._register(name="Ada")

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertIn("accessToken", body)
        self.assertIn("refreshToken", body)
        self.assertEqual(body["message"], "Registration successful. Please check your email.")
        self.assertEqual(body["user"]["email"], "a@x.com")
        self.assertEqual(body["user"]["role"], "OWNER")
        self.assertEqual(body["user"]["name"], "Ada")
        self.assertTrue(body["user"]["is_active"])

        claims = self.app.state.token_codec.decode(body["accessToken"], expected_type=TokenType.ACCESS)
        self.assertEqual(claims.role, "OWNER")
        stored = self.app.state.store.find_principal_by_email("a@x.com")
        self.assertEqual(stored.refresh_token, body["refreshToken"])

    def test_duplicate_registration_is_conflict(self) -> None:
        self.assertEqual(self._register().status_code, 201)

        response = self._register(email="A@X.com")

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "CONFLICT")

    def test_admin_role_cannot_be_self_assigned(self) -> None:
        response = self._register(role="ADMIN")

        self.assertEqual(response.status_code, 422)
        body = response.json()
        self.assertEqual(body["code"], "VALIDATION_ERROR")
        self.assertEqual(body["path"], "/api/v1/auth/register")
        self.assertIn("timestamp", body)
        self.assertTrue(body["details"]["errors"])
        self.assertIsNone(self.app.state.store.find_principal_by_email("a@x.com"))

    def test_login_wrong_password_is_generic_401_without_writes(self) -> None:
        self._register()
        store = self.app.state.store
        writes_before = store.principal_write_count

        wrong_password = self.client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": "nope"})
        unknown_email = self.client.post("/api/v1/auth/login", json={"email": "b@x.com", "password": "pw"})

        for response in (wrong_password, unknown_email):
            self.assertEqual(response.status_code, 401)
            self.assertEqual(response.json()["code"], "UNAUTHORIZED")
            self.assertEqual(response.json()["message"], "Invalid email or password")
        self.assertEqual(store.principal_write_count, writes_before)

    def test_refresh_rotates_and_old_token_is_rejected(self) -> None:
        tokens = self._register().json()

        rotated = self.client.post("/api/v1/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
        self.assertEqual(rotated.status_code, 200)
        self.assertNotEqual(rotated.json()["refreshToken"], tokens["refreshToken"])

        replay = self.client.post("/api/v1/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
        self.assertEqual(replay.status_code, 401)
        self.assertEqual(replay.json()["message"], "Invalid or expired token")

    def test_logout_requires_token_and_revokes_refresh(self) -> None:
        tokens = self._register().json()

        anonymous = self.client.post("/api/v1/auth/logout")
        self.assertEqual(anonymous.status_code, 401)

        logout = self.client.post("/api/v1/auth/logout", headers=self._bearer(tokens["accessToken"]))
        self.assertEqual(logout.status_code, 200)
        self.assertEqual(logout.json(), {"message": "Logged out successfully."})

        again = self.client.post("/api/v1/auth/logout", headers=self._bearer(tokens["accessToken"]))
        self.assertEqual(again.status_code, 200)

        refresh = self.client.post("/api/v1/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
        self.assertEqual(refresh.status_code, 401)

    def test_reset_password_response_does_not_reveal_registration(self) -> None:
        self._register()

        known = self.client.post("/api/v1/auth/reset-password", json={"email": "a@x.com"})
        unknown = self.client.post("/api/v1/auth/reset-password", json={"email": "ghost@x.com"})

        self.assertEqual(known.status_code, 200)
        self.assertEqual(unknown.status_code, 200)
        self.assertEqual(known.content, unknown.content)
        self.assertEqual(self.app.state.identity_delegate.reset_requests, ["a@x.com"])

    def test_provider_outage_on_login_is_503(self) -> None:
        self._register()
        self.app.state.identity_delegate.unavailable_message = "provider down"

        response = self.client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": "pw"})

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["code"], "SERVICE_UNAVAILABLE")


class ProfileApiTests(_SettingsEnvCase):
    def test_me_returns_and_updates_profile(self) -> None:
        tokens = self._register().json()
        headers = self._bearer(tokens["accessToken"])

        me = self.client.get("/api/v1/users/me", headers=headers)
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["email"], "a@x.com")
        self.assertNotIn("refresh_token", me.json())

        updated = self.client.patch("/api/v1/users/me", headers=headers, json={"name": "Grace"})
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.json()["name"], "Grace")

    def test_me_rejects_missing_and_malformed_tokens(self) -> None:
        for headers in ({}, {"Authorization": "Bearer nope"}, {"Authorization": "Basic abc"}):
            with self.subTest(headers=headers):
                response = self.client.get("/api/v1/users/me", headers=headers)
                self.assertEqual(response.status_code, 401)
                self.assertEqual(response.json()["message"], "Invalid or missing token")

    def test_status_change_is_admin_only(self) -> None:
        owner = self._register().json()

        response = self.client.patch(
            f"/api/v1/users/{owner['user']['id']}/status",
            headers=self._bearer(owner["accessToken"]),
            json={"is_active": False},
        )

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "FORBIDDEN")

    def test_admin_deactivation_blocks_login_and_refresh(self) -> None:
        owner = self._register().json()
        admin_token = self._make_admin()

        response = self.client.patch(
            f"/api/v1/users/{owner['user']['id']}/status",
            headers=self._bearer(admin_token),
            json={"is_active": False},
        )
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()["is_active"])

        login = self.client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": "pw"})
        self.assertEqual(login.status_code, 401)
        refresh = self.client.post("/api/v1/auth/refresh", json={"refreshToken": owner["refreshToken"]})
        self.assertEqual(refresh.status_code, 401)

    def test_status_change_for_unknown_principal_is_404(self) -> None:
        admin_token = self._make_admin()

        response = self.client.patch(
            "/api/v1/users/missing/status",
            headers=self._bearer(admin_token),
            json={"is_active": False},
        )

        self.assertEqual(response.status_code, 404)

    def test_profile_photo_url_is_validated_and_returned(self) -> None:
        tokens = self._register().json()
        headers = self._bearer(tokens["accessToken"])

        updated = self.client.patch(
            "/api/v1/users/me",
            headers=headers,
            json={"profile_photo_url": "https://example.com/photo.jpg"},
        )
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.json()["profile_photo_url"], "https://example.com/photo.jpg")

        for body in ({"profile_photo_url": "not a url"}, {}):
            with self.subTest(body=body):
                rejected = self.client.patch("/api/v1/users/me", headers=headers, json=body)
                self.assertEqual(rejected.status_code, 422)
                self.assertEqual(rejected.json()["code"], "VALIDATION_ERROR")


class PrincipalLookupApiTests(_SettingsEnvCase):
    def setUp(self) -> None:
        super().setUp()
        self.owner = self._register(email="owner@x.com").json()
        self.other = self._register(email="other@x.com").json()
        self.reviewer = self._register(email="reviewer@x.com", role="REVIEWER").json()

    def _get(self, user_id: str, token: str):
        return self.client.get(f"/api/v1/users/{user_id}", headers=self._bearer(token))

    def test_owner_sees_only_own_profile(self) -> None:
        own = self._get(self.owner["user"]["id"], self.owner["accessToken"])
        self.assertEqual(own.status_code, 200)
        self.assertEqual(own.json()["email"], "owner@x.com")

        other = self._get(self.other["user"]["id"], self.owner["accessToken"])
        self.assertEqual(other.status_code, 403)
        self.assertEqual(other.json()["code"], "FORBIDDEN")

    def test_reviewer_and_admin_see_other_profiles(self) -> None:
        for label, token in (("reviewer", self.reviewer["accessToken"]), ("admin", self._make_admin())):
            with self.subTest(role=label):
                response = self._get(self.owner["user"]["id"], token)
                self.assertEqual(response.status_code, 200)
                self.assertEqual(response.json()["id"], self.owner["user"]["id"])

    def test_unknown_principal_is_404_for_every_role(self) -> None:
        tokens = {
            "owner": self.owner["accessToken"],
            "reviewer": self.reviewer["accessToken"],
            "admin": self._make_admin(),
        }
        for label, token in tokens.items():
            with self.subTest(role=label):
                response = self._get("does-not-exist", token)
                self.assertEqual(response.status_code, 404)
                self.assertEqual(response.json()["code"], "NOT_FOUND")

    def test_lookup_requires_authentication(self) -> None:
        response = self.client.get(f"/api/v1/users/{self.owner['user']['id']}")

        self.assertEqual(response.status_code, 401)


class ApplicationEnvelopeApiTests(_SettingsEnvCase):
    def test_unexpected_errors_use_error_envelope(self) -> None:
        tokens = self._register().json()
        client = TestClient(self.app, raise_server_exceptions=False)

        with patch.object(AuthService, "get_profile", side_effect=RuntimeError("boom")):
            response = client.get("/api/v1/users/me", headers=self._bearer(tokens["accessToken"]))

        self.assertEqual(response.status_code, 500)
        body = response.json()
        self.assertEqual(body["code"], "INTERNAL_SERVER_ERROR")
        self.assertEqual(body["message"], "Internal server error")
        self.assertEqual(body["path"], "/api/v1/users/me")
        self.assertIn("timestamp", body)
        self.assertNotIn("boom", response.text)

    def test_cors_allows_configured_frontend_origin(self) -> None:
        preflight = self.client.options(
            "/api/v1/auth/login",
            headers={"Origin": "http://localhost:3001", "Access-Control-Request-Method": "POST"},
        )
        self.assertEqual(preflight.status_code, 200)
        self.assertEqual(preflight.headers["access-control-allow-origin"], "http://localhost:3001")
        self.assertEqual(preflight.headers["access-control-allow-credentials"], "true")

        foreign = self.client.post(
            "/api/v1/auth/reset-password",
            headers={"Origin": "https://evil.example"},
            json={"email": "a@x.com"},
        )
        self.assertNotIn("access-control-allow-origin", foreign.headers)


if __name__ == "__main__":
    unittest.main()
