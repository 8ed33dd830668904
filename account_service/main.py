"""FastAPI application wiring for the account service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.routes import router as v1_router
from .audit import AuditDispatcher
from .cache import RedisCredentialCache
from .config import get_settings
from .domain.credentials import CredentialCoordinator
from .domain.service import AccountService
from .repository import AccountRepository
from .security.passwords import CredentialHasher

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, Redis, audit worker) for the app lifecycle."""
    pool = ConnectionPool(
        settings.database_url,
        open=False,
        kwargs={"options": f"-c statement_timeout={settings.db_statement_timeout_ms}"},
    )
    pool.open()
    redis_client = redis.from_url(
        settings.redis_url,
        socket_timeout=settings.redis_socket_timeout_seconds,
        socket_connect_timeout=settings.redis_socket_timeout_seconds,
    )
    repository = AccountRepository(pool, connect_timeout=settings.db_pool_timeout_seconds)
    audit = AuditDispatcher(repository.write_audit_event, max_queue=settings.audit_queue_size)
    audit.start()
    cache = RedisCredentialCache(
        redis_client,
        ttl_seconds=settings.credential_cache_ttl_seconds,
        key_prefix=settings.credential_cache_prefix,
    )
    hasher = CredentialHasher(
        time_cost=settings.password_time_cost,
        memory_cost=settings.password_memory_cost,
        parallelism=settings.password_parallelism,
    )
    app.state.pool = pool
    app.state.account_service = AccountService(
        repository, CredentialCoordinator(repository, cache), hasher, audit
    )
    logger.info("account service ready")
    try:
        yield
    finally:
        audit.stop()
        redis_client.close()
        pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics", tags=["health"])
def metrics() -> Response:
    """Expose Prometheus metrics for scrapes."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(v1_router)
