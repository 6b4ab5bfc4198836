from datetime import timedelta
from unittest.mock import patch

from tests.base import T0, ApiTestCase

from app.core.config import settings
from app.services.rate_limit import InMemoryRateLimiter

PHONE = "919876543210"


class AuthApiTests(ApiTestCase):
    def _send(self, phone: str = PHONE, code: str = "123456", at=T0):
        with (
            patch("app.services.otp_service._generate_code", return_value=code),
            patch("app.services.otp_service._now_utc", return_value=at),
        ):
            return self.client.post("/api/auth/send-otp", json={"mobile_number": phone})

    def _verify(self, code: str, phone: str = PHONE, at=T0 + timedelta(seconds=30)):
        with patch("app.services.otp_service._now_utc", return_value=at):
            return self.client.post("/api/auth/verify-otp", json={"mobile_number": phone, "otp": code})

    def test_send_then_verify_returns_token_and_verified_user(self):
        sent = self._send()
        self.assertEqual(sent.status_code, 200)
        self.assertEqual(sent.json()["message"], "OTP sent successfully.")
        self.assertNotIn("debug_code", sent.json())

        row = self.account(PHONE)
        self.assertFalse(row.is_verified)
        self.assertIsNotNone(row.otp)
        self.assertIsNotNone(row.otp_expires_at)

        verified = self._verify("123456")
        self.assertEqual(verified.status_code, 200)
        body = verified.json()
        self.assertEqual(body["message"], "Login successful")
        self.assertTrue(body["token"])
        self.assertTrue(body["user"]["is_verified"])
        self.assertEqual(body["user"]["mobile_number"], PHONE)

        row = self.account(PHONE)
        self.assertIsNone(row.otp)
        self.assertIsNone(row.otp_expires_at)

        again = self._verify("123456")
        self.assertEqual(again.status_code, 400)

    def test_rejections_are_uniform(self):
        self._send()
        wrong = self._verify("000000")
        self._send(phone="918888888888", code="555555")
        expired = self._verify("555555", phone="918888888888", at=T0 + timedelta(minutes=6))
        unknown = self._verify("123456", phone="917777777777")
        for response in (wrong, expired, unknown):
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json()["message"], "Invalid OTP or mobile number")

    def test_malformed_numbers_are_rejected(self):
        for bad in ("12345", "98765-43210", "abcdefghijk", ""):
            with self.subTest(number=bad):
                response = self.client.post("/api/auth/send-otp", json={"mobile_number": bad})
                self.assertEqual(response.status_code, 400)
        missing = self.client.post("/api/auth/send-otp", json={})
        self.assertEqual(missing.status_code, 400)
        self.assertEqual(missing.json()["message"], "Mobile number is required")

        no_otp = self.client.post("/api/auth/verify-otp", json={"mobile_number": PHONE})
        self.assertEqual(no_otp.status_code, 400)
        self.assertIsNone(self.account("12345"))

    def test_non_ascii_digits_do_not_create_a_second_account(self):
        self.assertEqual(self._send().status_code, 200)
        response = self._send(phone="٩١٩٨٧٦٥٤٣٢١٠")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Invalid mobile number format")
        with self.SessionLocal() as db:
            from app.models.user import User

            self.assertEqual(db.query(User).count(), 1)

    def test_mistyped_and_unparseable_bodies_are_400(self):
        numeric = self.client.post("/api/auth/send-otp", json={"mobile_number": 9198765432})
        self.assertEqual(numeric.status_code, 400)
        self.assertEqual(numeric.json(), {"message": "Invalid request", "detail": "Invalid request"})

        broken = self.client.post(
            "/api/auth/verify-otp",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        self.assertEqual(broken.status_code, 400)
        self.assertEqual(broken.json()["message"], "Invalid request")

    def test_dev_mode_echoes_code(self):
        settings.OTP_DEV_MODE = True
        response = self._send(code="424242")
        self.assertEqual(response.json().get("debug_code"), "424242")

    def test_me_requires_valid_bearer_token(self):
        self._send()
        token = self._verify("123456").json()["token"]

        me = self.client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["mobileNumber"], PHONE)
        self.assertTrue(me.json()["user"]["is_verified"])

        for headers in ({}, {"Authorization": "Bearer not-a-token"}, {"Authorization": f"Bearer {token}x"}):
            with self.subTest(headers=headers):
                response = self.client.get("/api/auth/me", headers=headers)
                self.assertEqual(response.status_code, 401)
                self.assertEqual(response.json()["message"], "Unauthenticated")

    def test_profile_update(self):
        self._send()
        token = self._verify("123456").json()["token"]
        response = self.client.put(
            "/api/auth/profile",
            headers={"Authorization": f"Bearer {token}"},
            json={"full_name": "Asha Rao", "default_postal_code": "411001"},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["full_name"], "Asha Rao")
        self.assertEqual(self.account(PHONE).default_postal_code, "411001")

        anonymous = self.client.put("/api/auth/profile", json={"full_name": "X"})
        self.assertEqual(anonymous.status_code, 401)

    def test_verify_fails_closed_when_signing_is_misconfigured(self):
        self._send()
        settings.APP_ENV = "production"
        settings.JWT_SECRET = ""
        response = self._verify("123456")
        self.assertEqual(response.status_code, 500)
        self.assertNotIn("token", response.json())
        row = self.account(PHONE)
        self.assertIsNotNone(row.otp)
        self.assertFalse(row.is_verified)

    def test_transient_database_failure_is_503(self):
        from app.services.errors import ServiceUnavailable

        with patch("app.services.otp_service.run_in_transaction", side_effect=ServiceUnavailable("db down")):
            response = self.client.post("/api/auth/send-otp", json={"mobile_number": PHONE})
        self.assertEqual(response.status_code, 503)
        self.assertNotIn("db down", response.text)

    def test_send_is_limited_by_phone_when_configured(self):
        limiter = InMemoryRateLimiter()
        settings.OTP_SEND_RATE_LIMIT = 1
        with patch("app.services.rate_limit.get_rate_limiter", return_value=limiter):
            first = self._send()
            second = self._send()
        self.assertEqual(first.status_code, 200)
        self.assertEqual(second.status_code, 429)
        self.assertIn("Retry-After", second.headers)

    def test_forwarded_for_is_ignored_unless_trusted(self):
        settings.OTP_SEND_RATE_LIMIT = 1

        def send_pair():
            limiter = InMemoryRateLimiter()
            with patch("app.services.rate_limit.get_rate_limiter", return_value=limiter):
                first = self.client.post(
                    "/api/auth/send-otp", json={"mobile_number": PHONE}, headers={"X-Forwarded-For": "203.0.113.1"}
                )
                second = self.client.post(
                    "/api/auth/send-otp", json={"mobile_number": "919876543211"}, headers={"X-Forwarded-For": "203.0.113.2"}
                )
            return first.status_code, second.status_code

        settings.TRUST_FORWARDED_FOR = False
        self.assertEqual(send_pair(), (200, 429))
        settings.TRUST_FORWARDED_FOR = True
        self.assertEqual(send_pair(), (200, 200))

    def test_send_is_unlimited_by_default(self):
        settings.OTP_SEND_RATE_LIMIT = 0
        for idx in range(5):
            self.assertEqual(self._send(code=f"10000{idx}").status_code, 200)

    def test_verify_is_limited_when_configured(self):
        limiter = InMemoryRateLimiter()
        settings.OTP_VERIFY_RATE_LIMIT = 1
        self._send()
        with patch("app.services.rate_limit.get_rate_limiter", return_value=limiter):
            wrong = self._verify("000000")
            blocked = self._verify("123456")
        self.assertEqual(wrong.status_code, 400)
        self.assertEqual(blocked.status_code, 429)
