"""FastAPI application wiring for the tenant API."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.errors import register_exception_handlers
from .api.routes import router
from .config import Settings, get_settings
from .domain.auth_service import AuthService
from .domain.organisation_service import OrganisationService
from .repository import ORGANISATIONS, USERS, DocumentRepository
from .security.passwords import PasswordHasher
from .security.rate_limiter import build_rate_limiter
from .security.tokens import TokenSigner

logger = logging.getLogger(__name__)

settings = get_settings()


def configure_logging(level: str) -> None:
    """Install a root handler once; uvicorn's own loggers are left alone."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def build_services(app: FastAPI, pool: ConnectionPool, settings: Settings) -> None:
    """Create repositories and services and attach them to the application state."""
    users = DocumentRepository(pool, USERS)
    organisations = DocumentRepository(pool, ORGANISATIONS)
    for repository in (users, organisations):
        repository.ensure_collection()

    signer = TokenSigner(settings.jwt_issuer)
    app.state.settings = settings
    app.state.token_signer = signer
    app.state.rate_limiter = build_rate_limiter(settings)
    app.state.auth_service = AuthService(
        users,
        signer=signer,
        hasher=PasswordHasher(rounds=settings.password_hash_rounds),
        settings=settings,
    )
    app.state.organisation_service = OrganisationService(organisations)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, services) for the app lifecycle."""
    configure_logging(settings.log_level)
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    app.state.pool = pool
    try:
        build_services(app, pool, settings)
        logger.info("%s %s ready", settings.app_name, settings.version)
        yield
    finally:
        pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)

register_exception_handlers(app)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(router)
