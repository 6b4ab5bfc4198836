from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import get_db
from app.services.diagnostics import base_diagnostics, database_diagnostics, health_report
from app.services.sms_service import sms_provider_health

health_router = APIRouter()
diagnostics_router = APIRouter()


@health_router.get("")
def health(db: Session = Depends(get_db)):
    return health_report(db)


@health_router.head("")
def health_head():
    return Response(status_code=200)


def _require_diagnostics_enabled() -> None:
    if not settings.DIAGNOSTICS_ENABLED:
        raise HTTPException(status_code=404, detail="Not Found")


@diagnostics_router.get("", dependencies=[Depends(_require_diagnostics_enabled)])
def diagnostics():
    return base_diagnostics()


@diagnostics_router.get("/database", dependencies=[Depends(_require_diagnostics_enabled)])
def diagnostics_database(db: Session = Depends(get_db)):
    return database_diagnostics(db)


@diagnostics_router.get("/sms-provider", dependencies=[Depends(_require_diagnostics_enabled)])
def diagnostics_sms_provider():
    return sms_provider_health()
