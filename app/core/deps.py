from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.services.auth_providers import AuthProvider, SessionInfo, get_auth_provider

bearer = HTTPBearer(auto_error=False)

UNAUTHENTICATED = "Unauthenticated"


def get_provider(db: Session = Depends(get_db)) -> AuthProvider:
    return get_auth_provider(db)


def get_current_session(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    provider: AuthProvider = Depends(get_provider),
) -> SessionInfo:
    if not creds or not creds.credentials:
        raise HTTPException(status_code=401, detail=UNAUTHENTICATED, headers={"WWW-Authenticate": "Bearer"})
    session = provider.get_session(creds.credentials)
    if session is None:
        raise HTTPException(status_code=401, detail=UNAUTHENTICATED, headers={"WWW-Authenticate": "Bearer"})
    return session
