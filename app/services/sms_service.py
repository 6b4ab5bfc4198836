from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from app.core.config import settings
from app.services.errors import SmsDeliveryError
from app.services.phone import mask_mobile_number

_LOG = logging.getLogger("app.sms")


class SmsSender(Protocol):
    def send_code(self, *, mobile_number: str, code: str) -> dict[str, Any]:
        ...


def _otp_dev_mode_enabled() -> bool:
    return bool(getattr(settings, "OTP_DEV_MODE", False)) and not settings.is_production


def build_otp_message(code: str) -> str:
    template = str(settings.OTP_SMS_TEMPLATE or "").strip() or "Your verification code is {code}"
    try:
        return template.format(code=code, ttl_minutes=settings.OTP_TTL_MINUTES)
    except (KeyError, IndexError, ValueError):
        return f"Your verification code is {code}"


class DummySmsSender:
    """Logs instead of sending. The code itself is only logged in dev mode."""

    def send_code(self, *, mobile_number: str, code: str) -> dict[str, Any]:
        dev_mode = _otp_dev_mode_enabled()
        if dev_mode:
            _LOG.warning("[OTP MOCK] phone=%s code=%s", mask_mobile_number(mobile_number), code)
        else:
            _LOG.info("[OTP MOCK] phone=%s code withheld", mask_mobile_number(mobile_number))
        payload: dict[str, Any] = {
            "provider": "mock_sms",
            "status": "accepted",
            "sent": False,
            "mocked": True,
            "dev_mode": dev_mode,
        }
        if dev_mode:
            payload["debug_code"] = str(code)
        return payload


class HttpSmsGatewaySender:
    def __init__(self, *, url: str, api_key: str, sender_id: str, timeout: float, transport: httpx.BaseTransport | None = None):
        self.url = url
        self.api_key = api_key
        self.sender_id = sender_id
        self.timeout = timeout
        self.transport = transport

    def send_code(self, *, mobile_number: str, code: str) -> dict[str, Any]:
        if not self.url or not self.api_key:
            raise SmsDeliveryError("SMS gateway is not configured")
        payload = {
            "sender": self.sender_id,
            "to": mobile_number,
            "message": build_otp_message(code),
        }
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(
                    self.url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
        except httpx.TimeoutException as exc:
            raise SmsDeliveryError("SMS gateway timed out") from exc
        except httpx.HTTPError as exc:
            raise SmsDeliveryError(f"SMS gateway request failed: {type(exc).__name__}") from exc
        if response.status_code >= 400:
            _LOG.error(
                "sms gateway rejected message phone=%s status=%s",
                mask_mobile_number(mobile_number),
                response.status_code,
            )
            raise SmsDeliveryError(f"SMS gateway returned HTTP {response.status_code}")
        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = {}
        return {
            "provider": "http",
            "status": "accepted",
            "sent": True,
            "response": body,
        }


def get_sms_sender() -> SmsSender:
    provider = str(settings.SMS_PROVIDER or "dummy").strip().lower()
    if provider in {"", "dummy", "mock", "console"}:
        return DummySmsSender()
    if provider in {"http", "gateway"}:
        return HttpSmsGatewaySender(
            url=str(settings.SMS_GATEWAY_URL or "").strip(),
            api_key=str(settings.SMS_GATEWAY_API_KEY or "").strip(),
            sender_id=str(settings.SMS_SENDER_ID or "").strip(),
            timeout=float(settings.SMS_TIMEOUT_SECONDS),
        )
    raise SmsDeliveryError(f"Unknown SMS_PROVIDER: {provider}")


def sms_provider_health() -> dict[str, Any]:
    provider = str(settings.SMS_PROVIDER or "dummy").strip().lower()
    if provider in {"", "dummy", "mock", "console"}:
        return {"provider": "dummy", "status": "ok", "mode": "mock", "can_send": True, "issues": []}
    if provider in {"http", "gateway"}:
        checks = {
            "gateway_url_configured": bool(str(settings.SMS_GATEWAY_URL or "").strip()),
            "api_key_configured": bool(str(settings.SMS_GATEWAY_API_KEY or "").strip()),
        }
        issues: list[str] = []
        if not checks["gateway_url_configured"]:
            issues.append("SMS_GATEWAY_URL is not set")
        if not checks["api_key_configured"]:
            issues.append("SMS_GATEWAY_API_KEY is not set")
        can_send = all(checks.values())
        return {
            "provider": "http",
            "status": "ok" if can_send else "degraded",
            "mode": "real",
            "can_send": can_send,
            "checks": checks,
            "issues": issues,
        }
    return {
        "provider": provider,
        "status": "error",
        "mode": "unknown",
        "can_send": False,
        "checks": {"provider_supported": False},
        "issues": [f"Unknown SMS_PROVIDER: {provider}"],
    }
