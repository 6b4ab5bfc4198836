from fastapi import APIRouter
from app.api import auth, system

router = APIRouter()
router.include_router(auth.router, prefix="/auth", tags=["Auth"])
router.include_router(system.health_router, prefix="/health", tags=["System"])
router.include_router(system.diagnostics_router, prefix="/diagnostics", tags=["System"])
