"""FastAPI application wiring for the accounts service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.routes import router as v1_router
from .config import Settings, get_settings
from .domain.contracts import AccountPersistence
from .domain.lifecycle import AccountLifecycle
from .domain.policy import PolicyGate
from .domain.roles import RoleResolver
from .domain.store import AccountStore
from .memory_repository import InMemoryAccountRepository
from .repository import AccountRepository

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_components(app: FastAPI, repository: AccountPersistence, config: Settings) -> None:
    """Attach the store, role resolver, lifecycle hooks and policy gate to ``app.state``."""
    store = AccountStore(repository)
    resolver = RoleResolver(repository)
    app.state.account_store = store
    app.state.account_lifecycle = AccountLifecycle(store)
    app.state.policy_gate = PolicyGate(
        store, resolver, enable_team_accounts=config.enable_team_accounts
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, services) for the app lifecycle."""
    if settings.storage_backend == "memory":
        logger.info("account storage using in-memory backend")
        build_components(app, InMemoryAccountRepository(), settings)
        yield
        return

    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    app.state.pool = pool
    logger.info("account storage using postgres backend")
    build_components(app, AccountRepository(pool), settings)
    try:
        yield
    finally:
        pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


app.include_router(v1_router)


@app.get("/metrics")
def metrics() -> Response:
    """Expose Prometheus metrics for scrapes."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
