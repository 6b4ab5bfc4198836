from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.core.config import settings
from app.services.errors import InvalidSessionToken, TokenConfigurationError

_LOG = logging.getLogger("app.security")

JWT_ALGORITHM = "HS256"
INSECURE_SECRETS = {"", "change_me", "changeme", "secret", "default-insecure-secret-for-dev-only"}
MIN_PRODUCTION_SECRET_LENGTH = 32

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

_dev_secret: str | None = None


def hash_code(code: str) -> str:
    return pwd_context.hash(code)


def verify_code(code: str, code_hash: str) -> bool:
    if not code or not code_hash:
        return False
    try:
        return pwd_context.verify(code, code_hash)
    except (ValueError, TypeError):
        return False


def create_jwt(payload: dict, secret: str, expires_delta: timedelta) -> str:
    now = datetime.now(timezone.utc)
    data = payload.copy()
    data.update({"iat": int(now.timestamp()), "exp": int((now + expires_delta).timestamp())})
    return jwt.encode(data, secret, algorithm=JWT_ALGORITHM)


def decode_jwt(token: str, secret: str) -> dict:
    return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])


def signing_secret_problem() -> str | None:
    """Describe why the configured secret is unusable in production, if it is."""
    secret = str(settings.JWT_SECRET or "").strip()
    if secret.lower() in INSECURE_SECRETS:
        return "JWT_SECRET is missing or uses a known insecure value"
    if len(secret) < MIN_PRODUCTION_SECRET_LENGTH:
        return f"JWT_SECRET must be at least {MIN_PRODUCTION_SECRET_LENGTH} characters"
    return None


def ensure_signing_secret() -> str:
    global _dev_secret
    secret = str(settings.JWT_SECRET or "").strip()
    if settings.is_production:
        problem = signing_secret_problem()
        if problem:
            _LOG.critical("refusing to sign session tokens: %s", problem)
            raise TokenConfigurationError(problem)
        return secret
    if secret:
        return secret
    if _dev_secret is None:
        _LOG.warning("JWT_SECRET is not set; using a random per-process secret (APP_ENV=%s)", settings.APP_ENV)
        _dev_secret = secrets.token_urlsafe(48)
    return _dev_secret


def issue_session_token(*, user_id: int, mobile_number: str) -> str:
    secret = ensure_signing_secret()
    return create_jwt(
        {"sub": str(user_id), "userId": user_id, "mobileNumber": mobile_number},
        secret,
        timedelta(hours=settings.JWT_TTL_HOURS),
    )


def verify_session_token(token: str) -> dict[str, Any]:
    secret = ensure_signing_secret()
    if not token:
        raise InvalidSessionToken("missing token")
    try:
        claims = decode_jwt(token, secret)
    except JWTError as exc:
        raise InvalidSessionToken("invalid token") from exc
    if not isinstance(claims.get("userId"), int) or not claims.get("mobileNumber"):
        raise InvalidSessionToken("invalid token claims")
    return claims
