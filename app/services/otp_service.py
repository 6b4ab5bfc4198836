"""Mobile-number OTP issuance and verification against the ``users`` table.

Every caller (HTTP routes, the local auth provider, scripts) goes through
:func:`issue_otp` and :func:`verify_otp`; each runs as one bounded transaction
that locks the account row, so two requests for the same number race only at
commit granularity and the last commit wins.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import hash_code, verify_code
from app.db.transaction import run_in_transaction
from app.models.common import as_utc
from app.models.user import PROFILE_FIELDS, User
from app.services.errors import OtpRejected, ValidationFailed
from app.services.phone import mask_mobile_number, normalize_mobile_number
from app.services.sms_service import SmsSender, get_sms_sender

_LOG = logging.getLogger("app.otp")


@dataclass
class OtpIssued:
    mobile_number: str
    expires_at: datetime
    created: bool
    delivery: dict[str, Any] = field(default_factory=dict)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _generate_code(length: int | None = None) -> str:
    size = int(length or settings.OTP_LENGTH)
    return f"{secrets.randbelow(10 ** size):0{size}d}"


def _lock_account(db: Session, mobile_number: str) -> User | None:
    stmt = select(User).where(User.mobile_number == mobile_number).with_for_update()
    return db.execute(stmt).scalar_one_or_none()


def get_account(db: Session, mobile_number: str) -> User | None:
    return db.execute(select(User).where(User.mobile_number == mobile_number)).scalar_one_or_none()


def issue_otp(db: Session, mobile_number: str, *, sms_sender: SmsSender | None = None) -> OtpIssued:
    mobile = normalize_mobile_number(mobile_number)
    code = _generate_code()
    code_hash = hash_code(code)
    expires_at = _now_utc() + timedelta(minutes=settings.OTP_TTL_MINUTES)

    def _store(session: Session) -> bool:
        account = _lock_account(session, mobile)
        if account is None:
            account = User(mobile_number=mobile, is_verified=False)
            account.set_code(code_hash, expires_at)
            session.add(account)
            session.flush()
            return True
        account.set_code(code_hash, expires_at)
        return False

    created = run_in_transaction(db, _store, label="issue_otp", retry_on_conflict=True)
    _LOG.info("otp issued phone=%s new_account=%s expires_at=%s", mask_mobile_number(mobile), created, expires_at.isoformat())

    sender = sms_sender or get_sms_sender()
    delivery = sender.send_code(mobile_number=mobile, code=code)
    return OtpIssued(mobile_number=mobile, expires_at=expires_at, created=created, delivery=delivery)


def verify_otp(db: Session, mobile_number: str, code: str | None) -> User:
    """Consume the outstanding code for ``mobile_number``.

    Raises OtpRejected with the reason on any refusal. An expired code is
    cleared (and the clear committed) before the rejection is raised.
    """
    mobile = normalize_mobile_number(mobile_number)
    candidate = str(code or "").strip()
    if not candidate:
        raise ValidationFailed("Mobile number and OTP are required")

    def _check(session: Session) -> tuple[str | None, User | None]:
        account = _lock_account(session, mobile)
        if account is None:
            return OtpRejected.NOT_FOUND, None
        if not account.has_outstanding_code:
            return OtpRejected.NO_CODE, account
        if not verify_code(candidate, account.otp or ""):
            return OtpRejected.MISMATCH, account
        if _now_utc() > as_utc(account.otp_expires_at):
            account.clear_code()
            return OtpRejected.EXPIRED, account
        account.is_verified = True
        account.clear_code()
        return None, account

    reason, account = run_in_transaction(db, _check, label="verify_otp")
    if reason is not None:
        _LOG.info("otp rejected phone=%s reason=%s", mask_mobile_number(mobile), reason)
        raise OtpRejected(reason)
    _LOG.info("otp verified phone=%s user_id=%s", mask_mobile_number(mobile), account.id)
    return account


def get_user(db: Session, user_id: int) -> User | None:
    return db.get(User, user_id)


def update_profile(db: Session, user_id: int, changes: dict[str, Any]) -> User | None:
    unknown = set(changes) - set(PROFILE_FIELDS)
    if unknown:
        raise ValidationFailed(f"Unsupported profile fields: {', '.join(sorted(unknown))}")

    def _apply(session: Session) -> User | None:
        account = session.get(User, user_id, with_for_update=True)
        if account is None:
            return None
        for key, value in changes.items():
            setattr(account, key, value)
        account.updated_at = _now_utc()
        return account

    return run_in_transaction(db, _apply, label="update_profile")
