import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.errors import install_error_handlers
from app.core.http_hardening import install_http_hardening
from app.core.logging_setup import setup_logging
from app.core.security import signing_secret_problem
from app.api.router import router as api_router

_LOG = logging.getLogger("app.main")


def check_startup_configuration() -> None:
    if settings.is_production:
        problem = signing_secret_problem()
        if problem:
            _LOG.critical("refusing to start: %s", problem)
            raise RuntimeError(f"Fatal configuration error: {problem}")


@asynccontextmanager
async def lifespan(_: FastAPI):
    setup_logging(settings.LOG_LEVEL, production=settings.is_production)
    check_startup_configuration()
    _LOG.info("%s started (env=%s, auth_provider=%s)", settings.APP_NAME, settings.APP_ENV, settings.AUTH_PROVIDER)
    yield


app = FastAPI(title=settings.APP_NAME, version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
install_http_hardening(app)
install_error_handlers(app)

app.include_router(api_router, prefix="/api")

@app.get("/", include_in_schema=False)
def landing():
    return JSONResponse({"service": settings.APP_NAME, "status": "ok"})
