from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import get_current_session, get_provider
from app.db.session import get_db
from app.schemas.auth import ProfileUpdate, SendOtpIn, SendOtpOut, SessionRead, UserRead, VerifyOtpIn, VerifyOtpOut
from app.services import otp_service
from app.services.auth_providers import PROVIDER_LOCAL, AuthProvider, SessionInfo, serialize_user
from app.services.errors import ValidationFailed
from app.services.phone import normalize_mobile_number
from app.services.rate_limit import enforce_otp_limit

router = APIRouter()


def _client_ip(request: Request) -> str:
    xff = str(request.headers.get("x-forwarded-for") or "").strip() if settings.TRUST_FORWARDED_FOR else ""
    if xff:
        first = xff.split(",")[0].strip()
        if first:
            return first
    client = request.client
    return str(client.host if client else "unknown")


@router.post("/send-otp", response_model=SendOtpOut, response_model_exclude_none=True)
def send_otp(payload: SendOtpIn, request: Request, provider: AuthProvider = Depends(get_provider)):
    mobile = normalize_mobile_number(payload.mobile_number)
    enforce_otp_limit("send", mobile_number=mobile, client_ip=_client_ip(request))
    requested = provider.request_code(mobile)
    return SendOtpOut(
        message="OTP sent successfully.",
        expires_in_seconds=requested.expires_in_seconds,
        debug_code=requested.delivery.get("debug_code"),
    )


@router.post("/verify-otp", response_model=VerifyOtpOut)
def verify_otp(payload: VerifyOtpIn, request: Request, provider: AuthProvider = Depends(get_provider)):
    mobile = normalize_mobile_number(payload.mobile_number)
    if not str(payload.otp or "").strip():
        raise ValidationFailed("Mobile number and OTP are required")
    enforce_otp_limit("verify", mobile_number=mobile, client_ip=_client_ip(request))
    result = provider.verify_code(mobile, payload.otp)
    return VerifyOtpOut(message="Login successful", token=result.token, user=UserRead(**result.user))


@router.get("/me", response_model=SessionRead)
def me(session: SessionInfo = Depends(get_current_session)):
    return SessionRead(userId=session.user_id, mobileNumber=session.mobile_number, user=UserRead(**session.user))


@router.put("/profile", response_model=UserRead)
def update_profile(
    payload: ProfileUpdate,
    session: SessionInfo = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    if str(settings.AUTH_PROVIDER or PROVIDER_LOCAL).strip().lower() != PROVIDER_LOCAL:
        raise HTTPException(status_code=501, detail="Profile updates require the local auth provider")
    changes = payload.model_dump(exclude_unset=True)
    user = otp_service.update_profile(db, int(session.user_id), changes)
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthenticated")
    return UserRead(**serialize_user(user))
