from __future__ import annotations

import logging
from typing import Any

import httpx

_LOG = logging.getLogger("app.client")

DEFAULT_TIMEOUT_SECONDS = 10.0


class ApiError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(f"HTTP {status_code}: {message}")
        self.status_code = status_code
        self.message = message


class ApiNetworkError(Exception):
    pass


class ApiTimeoutError(ApiNetworkError):
    def __init__(self, timeout: float):
        super().__init__(f"Request timed out after {int(timeout * 1000)}ms")
        self.timeout = timeout


def _error_message(response: httpx.Response) -> str:
    fallback = f"Error {response.status_code}: {response.reason_phrase}"
    if "application/json" not in response.headers.get("content-type", ""):
        return fallback
    try:
        data = response.json()
    except ValueError:
        return fallback
    if isinstance(data, dict):
        return str(data.get("message") or data.get("detail") or fallback)
    return fallback


class StorefrontApiClient:
    """Thin client for the storefront auth API."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ):
        self.timeout = timeout
        self._http = httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "StorefrontApiClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, method: str, path: str, *, json: dict | None = None, token: str | None = None) -> Any:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            response = self._http.request(method, path, json=json, headers=headers)
        except httpx.TimeoutException as exc:
            raise ApiTimeoutError(self.timeout) from exc
        except httpx.HTTPError as exc:
            raise ApiNetworkError(f"{method} {path} failed: {exc}") from exc
        if response.status_code >= 400:
            raise ApiError(response.status_code, _error_message(response))
        if not response.content.strip():
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(response.status_code, "Failed to parse response as JSON") from exc

    def send_otp(self, mobile_number: str) -> dict[str, Any]:
        return self._request("POST", "/api/auth/send-otp", json={"mobile_number": mobile_number})

    def verify_otp(self, mobile_number: str, otp: str) -> dict[str, Any]:
        return self._request("POST", "/api/auth/verify-otp", json={"mobile_number": mobile_number, "otp": otp})

    def me(self, token: str) -> dict[str, Any]:
        return self._request("GET", "/api/auth/me", token=token)

    def update_profile(self, token: str, changes: dict[str, Any]) -> dict[str, Any]:
        return self._request("PUT", "/api/auth/profile", json=changes, token=token)

    def health(self) -> dict[str, Any]:
        return self._request("GET", "/api/health")
