from __future__ import annotations

import logging
import platform
import sys
import time
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, inspect, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.user import User

_LOG = logging.getLogger("app.diagnostics")

_STARTED_AT = time.monotonic()


def uptime_seconds() -> float:
    return round(time.monotonic() - _STARTED_AT, 3)


def _server_time() -> str:
    return datetime.now(timezone.utc).isoformat()


def _safe_error(exc: BaseException) -> str:
    # Driver messages can echo DSNs and hosts; only the class name leaves the process.
    return type(exc).__name__


def database_status(db: Session) -> dict[str, Any]:
    try:
        db.execute(text("SELECT 1"))
        return {"status": "connected", "error": None}
    except SQLAlchemyError as exc:
        _LOG.warning("health check database probe failed: %s", exc)
        db.rollback()
        return {"status": "error", "error": _safe_error(exc)}


def health_report(db: Session) -> dict[str, Any]:
    return {
        "status": "ok",
        "serverTime": _server_time(),
        "environment": settings.APP_ENV,
        "database": database_status(db),
        "uptime": uptime_seconds(),
    }


def base_diagnostics() -> dict[str, Any]:
    return {
        "timestamp": _server_time(),
        "environment": settings.APP_ENV,
        "serverInfo": {
            "pythonVersion": sys.version.split()[0],
            "platform": platform.platform(),
            "uptime": uptime_seconds(),
        },
        "authProvider": str(settings.AUTH_PROVIDER or "local").strip().lower(),
        "smsProvider": str(settings.SMS_PROVIDER or "dummy").strip().lower(),
    }


def database_diagnostics(db: Session) -> dict[str, Any]:
    report: dict[str, Any] = {
        "connectionHealthy": False,
        "testQuerySuccess": False,
        "serverTime": None,
        "tablesFound": [],
        "errorMessage": None,
    }
    try:
        connection = db.connection()
        report["connectionHealthy"] = True
        server_time = db.execute(text("SELECT CURRENT_TIMESTAMP")).scalar()
        report["testQuerySuccess"] = True
        report["serverTime"] = str(server_time) if server_time is not None else None

        inspector = inspect(connection)
        tables = sorted(inspector.get_table_names())
        report["tablesFound"] = tables
        if User.__tablename__ in tables:
            report["usersTableStructure"] = [
                {"column_name": col["name"], "data_type": str(col["type"])}
                for col in inspector.get_columns(User.__tablename__)
            ]
            report["userCount"] = int(db.execute(select(func.count(User.id))).scalar() or 0)
    except SQLAlchemyError as exc:
        _LOG.warning("database diagnostics failed: %s", exc)
        db.rollback()
        report["errorMessage"] = _safe_error(exc)
    return {
        "timestamp": _server_time(),
        "environment": settings.APP_ENV,
        "database": report,
    }
