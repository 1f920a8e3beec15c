"""Firebase identity delegate tests against stubbed provider transports."""

from __future__ import annotations

import json
import unittest
from unittest.mock import patch

from firebase_admin import auth as firebase_auth
from google.auth import exceptions as google_auth_exceptions
import httpx

from dealflow.adapters.identity import (
    DelegateUnavailableError,
    EmailAlreadyRegisteredError,
    FirebaseIdentityDelegate,
    InvalidCredentialError,
)
from dealflow.core.config import Settings


def _settings(**overrides) -> Settings:
    values = {
        "identity_provider": "firebase",
        "jwt_secret": "test-jwt-secret-that-is-long-enough-0123",
        "callback_secret": "test-callback-secret",
        "identity_api_key": "test-api-key",
        "identity_base_url": "https://identity.test/v1",
        "frontend_url": "https://app.test/",
    }
    values.update(overrides)
    return Settings(**values)


class _RecordingTransport:
    """Serves one canned response per call and keeps the requests it saw."""

    def __init__(self, *responses: httpx.Response | Exception) -> None:
        self._responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self._responses.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FirebaseRestDelegateTests(unittest.TestCase):
    def _delegate(self, *responses: httpx.Response | Exception, **overrides) -> tuple[FirebaseIdentityDelegate, _RecordingTransport]:
        transport = _RecordingTransport(*responses)
        client = httpx.Client(transport=httpx.MockTransport(transport))
        return FirebaseIdentityDelegate(_settings(**overrides), http_client=client), transport

    def test_verify_credential_returns_provider_identity(self) -> None:
        delegate, transport = self._delegate(httpx.Response(200, json={"localId": "uid-1", "email": "a@x.com"}))

        identity = delegate.verify_credential("a@x.com", "pw")

        self.assertEqual(identity.delegate_id, "uid-1")
        request = transport.requests[0]
        self.assertEqual(request.url.path, "/v1/accounts:signInWithPassword")
        self.assertEqual(request.url.params["key"], "test-api-key")
        self.assertEqual(json.loads(request.content)["email"], "a@x.com")

    def test_rejected_credentials_map_to_invalid_credential(self) -> None:
        for message in ("INVALID_LOGIN_CREDENTIALS", "EMAIL_NOT_FOUND", "INVALID_PASSWORD"):
            with self.subTest(message=message):
                delegate, _ = self._delegate(httpx.Response(400, json={"error": {"message": message}}))
                with self.assertRaises(InvalidCredentialError):
                    delegate.verify_credential("a@x.com", "wrong")

    def test_transport_and_server_faults_map_to_unavailable(self) -> None:
        outcomes = {
            "server_error": httpx.Response(503, json={"error": {"message": "BACKEND_ERROR"}}),
            "timeout": httpx.ConnectTimeout("timed out"),
            "missing_local_id": httpx.Response(200, json={}),
        }
        for label, outcome in outcomes.items():
            with self.subTest(case=label):
                delegate, _ = self._delegate(outcome)
                with self.assertRaises(DelegateUnavailableError):
                    delegate.verify_credential("a@x.com", "pw")

    def test_missing_api_key_fails_without_calling_provider(self) -> None:
        delegate, transport = self._delegate(identity_api_key=None)

        with self.assertRaises(DelegateUnavailableError):
            delegate.verify_credential("a@x.com", "pw")
        self.assertEqual(transport.requests, [])

    def test_password_reset_sends_oob_code_with_redirect(self) -> None:
        delegate, transport = self._delegate(httpx.Response(200, json={"email": "a@x.com"}))

        delegate.dispatch_password_reset("a@x.com")

        body = json.loads(transport.requests[0].content)
        self.assertEqual(transport.requests[0].url.path, "/v1/accounts:sendOobCode")
        self.assertEqual(body["requestType"], "PASSWORD_RESET")
        self.assertEqual(body["continueUrl"], "https://app.test/reset-password")


class _CreatedUser:
    uid = "uid-created"
    email = "a@x.com"


class FirebaseAdminDelegateTests(unittest.TestCase):
    def setUp(self) -> None:
        self.delegate = FirebaseIdentityDelegate(_settings(), http_client=httpx.Client())
        app_patch = patch("firebase_admin.get_app", return_value=object())
        app_patch.start()
        self.addCleanup(app_patch.stop)

    def test_create_credential_returns_provider_uid(self) -> None:
        with patch.object(firebase_auth, "create_user", return_value=_CreatedUser()) as create_user:
            identity = self.delegate.create_credential("a@x.com", "pw")

        self.assertEqual(identity.delegate_id, "uid-created")
        self.assertEqual(create_user.call_args.kwargs["email"], "a@x.com")

    def test_create_credential_error_mapping(self) -> None:
        cases = [
            (firebase_auth.EmailAlreadyExistsError("exists", None, None), EmailAlreadyRegisteredError),
            (ValueError("password must be at least 6 characters"), InvalidCredentialError),
            (firebase_auth.UnexpectedResponseError("boom"), DelegateUnavailableError),
        ]
        for raised, expected in cases:
            with self.subTest(raised=type(raised).__name__):
                with patch.object(firebase_auth, "create_user", side_effect=raised):
                    with self.assertRaises(expected):
                        self.delegate.create_credential("a@x.com", "pw")


class FirebaseAppInitialisationTests(unittest.TestCase):
    def setUp(self) -> None:
        app_patch = patch("firebase_admin.get_app", side_effect=ValueError("app does not exist"))
        app_patch.start()
        self.addCleanup(app_patch.stop)

    def test_unreadable_service_account_file_is_unavailable(self) -> None:
        delegate = FirebaseIdentityDelegate(
            _settings(firebase_credentials_path="/nonexistent.json"),
            http_client=httpx.Client(),
        )

        with patch("firebase_admin.credentials.Certificate", side_effect=FileNotFoundError("/nonexistent.json")):
            with patch.object(firebase_auth, "create_user") as create_user:
                with self.assertRaises(DelegateUnavailableError):
                    delegate.create_credential("a@x.com", "pw123456")

        create_user.assert_not_called()

    def test_missing_default_credentials_are_unavailable(self) -> None:
        delegate = FirebaseIdentityDelegate(_settings(), http_client=httpx.Client())
        missing = google_auth_exceptions.DefaultCredentialsError("no default credentials")

        with patch("firebase_admin.credentials.ApplicationDefault", side_effect=missing):
            with self.assertRaises(DelegateUnavailableError):
                delegate.create_credential("a@x.com", "pw123456")


if __name__ == "__main__":
    unittest.main()
