"""Client-side session state: the issued token plus a user snapshot.

Presence of both means "authenticated". Logout only forgets local state; the
token itself stays valid on the server until it expires.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from app.client.api_client import ApiError, StorefrontApiClient

_LOG = logging.getLogger("app.client")


@dataclass
class StoredSession:
    token: str
    user: dict[str, Any]


class SessionStore(Protocol):
    def load(self) -> StoredSession | None:
        ...

    def save(self, session: StoredSession) -> None:
        ...

    def clear(self) -> None:
        ...


class MemorySessionStore:
    def __init__(self):
        self._session: StoredSession | None = None

    def load(self) -> StoredSession | None:
        return self._session

    def save(self, session: StoredSession) -> None:
        self._session = session

    def clear(self) -> None:
        self._session = None


class FileSessionStore:
    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)

    def load(self) -> StoredSession | None:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError):
            _LOG.warning("discarding unreadable session file %s", self.path)
            self.clear()
            return None
        token = raw.get("token") if isinstance(raw, dict) else None
        user = raw.get("user") if isinstance(raw, dict) else None
        if not token or not isinstance(user, dict):
            self.clear()
            return None
        return StoredSession(token=str(token), user=user)

    def save(self, session: StoredSession) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps({"token": session.token, "user": session.user}), encoding="utf-8")
        os.replace(tmp, self.path)

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


class SessionManager:
    def __init__(self, api: StorefrontApiClient, store: SessionStore):
        self.api = api
        self.store = store
        self._session: StoredSession | None = None
        self._initialized = False

    def initialize(self, *, revalidate: bool = False) -> StoredSession | None:
        """Load persisted state; with ``revalidate`` ask the server if the token still works."""
        self._session = self.store.load()
        self._initialized = True
        if self._session is not None and revalidate:
            try:
                current = self.api.me(self._session.token)
            except ApiError as exc:
                if exc.status_code == 401:
                    _LOG.info("stored session rejected by server; clearing")
                    self.logout()
                    return None
                raise
            self._session = StoredSession(token=self._session.token, user=dict(current.get("user") or {}))
            self.store.save(self._session)
        return self._session

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            self.initialize()

    @property
    def token(self) -> str | None:
        self._ensure_initialized()
        return self._session.token if self._session else None

    @property
    def user(self) -> dict[str, Any] | None:
        self._ensure_initialized()
        return self._session.user if self._session else None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token) and self.user is not None

    def request_otp(self, mobile_number: str) -> dict[str, Any]:
        return self.api.send_otp(mobile_number)

    def login(self, mobile_number: str, otp: str) -> StoredSession:
        data = self.api.verify_otp(mobile_number, otp)
        session = StoredSession(token=str(data["token"]), user=dict(data.get("user") or {}))
        self.store.save(session)
        self._session = session
        self._initialized = True
        return session

    def auth_headers(self) -> dict[str, str]:
        token = self.token
        return {"Authorization": f"Bearer {token}"} if token else {}

    def logout(self) -> None:
        self.store.clear()
        self._session = None
        self._initialized = True

    def close(self) -> None:
        self.api.close()
