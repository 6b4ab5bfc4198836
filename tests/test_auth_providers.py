import json
from unittest.mock import patch

import httpx

from tests.base import ApiTestCase, DatabaseTestCase

from app.core.config import settings
from app.services.auth_providers import (
    LocalOtpAuthProvider,
    SupabaseAuthProvider,
    get_auth_provider,
)
from app.services.errors import AuthProviderError, OtpRejected

PHONE = "919876543210"


class SupabaseStub:
    """Minimal GoTrue behaviour: one pending code per phone, bearer tokens for /user."""

    def __init__(self):
        self.codes: dict[str, str] = {}
        self.requests: list[tuple[str, str, dict]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else {}
        self.requests.append((request.method, request.url.path, body))
        if request.headers.get("apikey") != "anon-key":
            return httpx.Response(401, json={"msg": "invalid apikey"})
        if request.url.path == "/auth/v1/otp":
            self.codes[body["phone"]] = "123456"
            return httpx.Response(200, json={})
        if request.url.path == "/auth/v1/verify":
            if self.codes.get(body["phone"]) != body["token"]:
                return httpx.Response(403, json={"msg": "Token has expired or is invalid"})
            del self.codes[body["phone"]]
            return httpx.Response(
                200,
                json={
                    "access_token": "sb-access-token",
                    "user": {"id": "b3f1", "phone": body["phone"].lstrip("+"), "phone_confirmed_at": "2026-10-18T12:00:00Z"},
                },
            )
        if request.url.path == "/auth/v1/user":
            if request.headers.get("authorization") != "Bearer sb-access-token":
                return httpx.Response(401, json={"msg": "invalid JWT"})
            return httpx.Response(200, json={"id": "b3f1", "phone": PHONE, "phone_confirmed_at": "2026-10-18T12:00:00Z"})
        return httpx.Response(404)


class SupabaseAuthProviderTests(DatabaseTestCase):
    def setUp(self):
        super().setUp()
        self.stub = SupabaseStub()
        self.provider = SupabaseAuthProvider(
            base_url="https://project.supabase.co",
            anon_key="anon-key",
            transport=httpx.MockTransport(self.stub),
        )

    def test_request_and_verify_code(self):
        requested = self.provider.request_code("+" + PHONE)
        self.assertEqual(requested.mobile_number, PHONE)
        self.assertEqual(self.stub.requests[0][2], {"phone": "+" + PHONE})

        result = self.provider.verify_code(PHONE, "123456")
        self.assertEqual(result.token, "sb-access-token")
        self.assertTrue(result.user["is_verified"])
        self.assertEqual(result.user["mobile_number"], PHONE)

        with self.assertRaises(OtpRejected):
            self.provider.verify_code(PHONE, "123456")

    def test_get_session(self):
        session = self.provider.get_session("sb-access-token")
        self.assertEqual(session.user_id, "b3f1")
        self.assertEqual(session.mobile_number, PHONE)
        self.assertIsNone(self.provider.get_session("stale"))
        self.assertIsNone(self.provider.get_session(""))

    def test_transport_failure_is_provider_error(self):
        def broken(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = SupabaseAuthProvider(base_url="https://x.supabase.co", anon_key="anon-key", transport=httpx.MockTransport(broken))
        with self.assertRaises(AuthProviderError):
            provider.request_code(PHONE)

    def test_missing_configuration_is_rejected(self):
        with self.assertRaises(AuthProviderError):
            SupabaseAuthProvider(base_url="", anon_key="")


class LocalOtpAuthProviderTests(DatabaseTestCase):
    def test_full_cycle_and_session_lookup(self):
        with self.SessionLocal() as db:
            provider = LocalOtpAuthProvider(db)
            with patch("app.services.otp_service._generate_code", return_value="654321"):
                requested = provider.request_code(PHONE)
            self.assertEqual(requested.expires_in_seconds, 300)

            result = provider.verify_code(PHONE, "654321")
            session = provider.get_session(result.token)
            self.assertEqual(session.mobile_number, PHONE)
            self.assertEqual(session.user_id, result.user["id"])
            self.assertIsNone(provider.get_session("garbage"))

    def test_factory_selects_by_setting(self):
        with self.SessionLocal() as db:
            settings.AUTH_PROVIDER = "local"
            self.assertIsInstance(get_auth_provider(db), LocalOtpAuthProvider)
            settings.AUTH_PROVIDER = "unknown"
            with self.assertRaises(AuthProviderError):
                get_auth_provider(db)


class SupabaseRoutingApiTests(ApiTestCase):
    def test_routes_delegate_to_selected_provider(self):
        stub = SupabaseStub()
        provider = SupabaseAuthProvider(
            base_url="https://project.supabase.co",
            anon_key="anon-key",
            transport=httpx.MockTransport(stub),
        )
        with patch("app.core.deps.get_auth_provider", return_value=provider):
            sent = self.client.post("/api/auth/send-otp", json={"mobile_number": PHONE})
            verified = self.client.post("/api/auth/verify-otp", json={"mobile_number": PHONE, "otp": "123456"})
            me = self.client.get("/api/auth/me", headers={"Authorization": "Bearer sb-access-token"})
        self.assertEqual(sent.status_code, 200)
        self.assertEqual(verified.status_code, 200)
        self.assertEqual(verified.json()["token"], "sb-access-token")
        self.assertEqual(me.json()["userId"], "b3f1")
        # No local account is created when codes are delegated.
        self.assertIsNone(self.account(PHONE))
