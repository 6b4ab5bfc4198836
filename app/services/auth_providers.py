from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import ensure_signing_secret, issue_session_token, verify_session_token
from app.models.user import PROFILE_FIELDS, User
from app.services import otp_service
from app.services.errors import AuthProviderError, InvalidSessionToken, OtpRejected, ValidationFailed
from app.services.phone import mask_mobile_number, normalize_mobile_number
from app.services.sms_service import SmsSender

_LOG = logging.getLogger("app.auth_provider")

PROVIDER_LOCAL = "local"
PROVIDER_SUPABASE = "supabase"


@dataclass
class AuthResult:
    token: str
    user: dict[str, Any]


@dataclass
class SessionInfo:
    user_id: int | str
    mobile_number: str
    user: dict[str, Any]


@dataclass
class CodeRequested:
    mobile_number: str
    expires_in_seconds: int
    delivery: dict[str, Any]


class AuthProvider(Protocol):
    name: str

    def request_code(self, mobile_number: str) -> CodeRequested:
        ...

    def verify_code(self, mobile_number: str, code: str | None) -> AuthResult:
        ...

    def get_session(self, token: str) -> SessionInfo | None:
        ...


def serialize_user(user: User) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": user.id,
        "mobile_number": user.mobile_number,
        "is_verified": bool(user.is_verified),
        "created_at": user.created_at,
        "updated_at": user.updated_at,
    }
    for key in PROFILE_FIELDS:
        data[key] = getattr(user, key)
    return data


class LocalOtpAuthProvider:
    """Codes live on the ``users`` row; sessions are locally signed JWTs."""

    name = PROVIDER_LOCAL

    def __init__(self, db: Session, *, sms_sender: SmsSender | None = None):
        self.db = db
        self.sms_sender = sms_sender

    def request_code(self, mobile_number: str) -> CodeRequested:
        issued = otp_service.issue_otp(self.db, mobile_number, sms_sender=self.sms_sender)
        return CodeRequested(
            mobile_number=issued.mobile_number,
            expires_in_seconds=int(settings.OTP_TTL_MINUTES) * 60,
            delivery=issued.delivery,
        )

    def verify_code(self, mobile_number: str, code: str | None) -> AuthResult:
        # a code is only consumed when a token can be signed for it
        ensure_signing_secret()
        user = otp_service.verify_otp(self.db, mobile_number, code)
        token = issue_session_token(user_id=user.id, mobile_number=user.mobile_number)
        return AuthResult(token=token, user=serialize_user(user))

    def get_session(self, token: str) -> SessionInfo | None:
        try:
            claims = verify_session_token(token)
        except InvalidSessionToken:
            return None
        user = otp_service.get_user(self.db, int(claims["userId"]))
        if user is None or user.mobile_number != claims["mobileNumber"]:
            return None
        return SessionInfo(user_id=user.id, mobile_number=user.mobile_number, user=serialize_user(user))


class SupabaseAuthProvider:
    """Delegates codes and sessions to a Supabase (GoTrue) auth server."""

    name = PROVIDER_SUPABASE

    def __init__(
        self,
        *,
        base_url: str,
        anon_key: str,
        timeout: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ):
        if not base_url or not anon_key:
            raise AuthProviderError("SUPABASE_URL and SUPABASE_ANON_KEY must be set for AUTH_PROVIDER=supabase")
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout
        self.transport = transport

    @staticmethod
    def _e164(mobile_number: str) -> str:
        return "+" + normalize_mobile_number(mobile_number)

    def _request(self, method: str, path: str, *, json: dict | None = None, token: str | None = None) -> httpx.Response:
        headers = {"apikey": self.anon_key}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            with httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
                response = client.request(method, path, json=json, headers=headers)
        except httpx.TimeoutException as exc:
            raise AuthProviderError("Auth provider timed out") from exc
        except httpx.HTTPError as exc:
            raise AuthProviderError(f"Auth provider request failed: {type(exc).__name__}") from exc
        if response.status_code >= 500:
            raise AuthProviderError(f"Auth provider returned HTTP {response.status_code}")
        return response

    @staticmethod
    def _user_snapshot(raw: dict[str, Any]) -> dict[str, Any]:
        phone = str(raw.get("phone") or "").lstrip("+")
        return {
            "id": str(raw.get("id") or ""),
            "mobile_number": phone or None,
            "is_verified": bool(raw.get("phone_confirmed_at")),
            "created_at": raw.get("created_at"),
            "updated_at": raw.get("updated_at"),
        }

    def request_code(self, mobile_number: str) -> CodeRequested:
        phone = self._e164(mobile_number)
        response = self._request("POST", "/auth/v1/otp", json={"phone": phone})
        if response.status_code >= 400:
            _LOG.warning("auth provider refused otp request phone=%s status=%s", mask_mobile_number(phone), response.status_code)
            raise ValidationFailed("Unable to send OTP to this mobile number")
        return CodeRequested(
            mobile_number=phone[1:],
            expires_in_seconds=int(settings.OTP_TTL_MINUTES) * 60,
            delivery={"provider": PROVIDER_SUPABASE, "status": "accepted", "sent": True},
        )

    def verify_code(self, mobile_number: str, code: str | None) -> AuthResult:
        phone = self._e164(mobile_number)
        candidate = str(code or "").strip()
        if not candidate:
            raise ValidationFailed("Mobile number and OTP are required")
        response = self._request("POST", "/auth/v1/verify", json={"type": "sms", "phone": phone, "token": candidate})
        if response.status_code >= 400:
            _LOG.info("auth provider rejected otp phone=%s status=%s", mask_mobile_number(phone), response.status_code)
            raise OtpRejected(OtpRejected.MISMATCH)
        body = response.json()
        token = str(body.get("access_token") or "")
        if not token:
            raise AuthProviderError("Auth provider response has no access token")
        return AuthResult(token=token, user=self._user_snapshot(body.get("user") or {}))

    def get_session(self, token: str) -> SessionInfo | None:
        if not token:
            return None
        response = self._request("GET", "/auth/v1/user", token=token)
        if response.status_code >= 400:
            return None
        user = self._user_snapshot(response.json())
        if not user["id"] or not user["mobile_number"]:
            return None
        return SessionInfo(user_id=user["id"], mobile_number=user["mobile_number"], user=user)


def get_auth_provider(db: Session) -> AuthProvider:
    mode = str(settings.AUTH_PROVIDER or PROVIDER_LOCAL).strip().lower()
    if mode == PROVIDER_SUPABASE:
        return SupabaseAuthProvider(
            base_url=str(settings.SUPABASE_URL or "").strip(),
            anon_key=str(settings.SUPABASE_ANON_KEY or "").strip(),
            timeout=float(settings.SUPABASE_TIMEOUT_SECONDS),
        )
    if mode != PROVIDER_LOCAL:
        raise AuthProviderError(f"Unknown AUTH_PROVIDER: {mode}")
    return LocalOtpAuthProvider(db)
