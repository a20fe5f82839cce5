"""FastAPI application wiring for the TryLog identity service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.routes import router as users_router
from .config import Settings, get_settings
from .domain.service import AccountLifecycleService
from .mail import build_notifier
from .repository import PostgresCredentialStore
from .security.lockout import FailedAttemptTracker
from .security.redis_lockout import RedisFailedAttemptTracker

logger = logging.getLogger(__name__)

settings = get_settings()


def build_attempt_tracker(settings: Settings) -> FailedAttemptTracker | RedisFailedAttemptTracker:
    """Instantiate the configured lockout backend, preferring Redis when available."""
    if settings.lockout_backend == "redis" and settings.redis_url:
        import redis

        try:
            client = redis.from_url(settings.redis_url)
            # ensure connectivity early to fail fast and fall back
            client.ping()
        except redis.RedisError as exc:
            logger.warning("redis lockout tracker unavailable, falling back to in-memory: %s", exc)
        else:
            logger.info("lockout tracker configured for redis backend at %s", settings.redis_url)
            return RedisFailedAttemptTracker(
                client,
                max_failures=settings.lockout_max_failures,
                window_seconds=settings.lockout_window_seconds,
            )

    logger.info("lockout tracker using in-memory backend")
    return FailedAttemptTracker(
        max_failures=settings.lockout_max_failures,
        window_seconds=settings.lockout_window_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, services) for the app lifecycle."""
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    app.state.pool = pool
    store = PostgresCredentialStore(
        pool,
        build_attempt_tracker(settings),
        token_ttl_seconds=settings.security_token_ttl_seconds,
    )
    app.state.account_service = AccountLifecycleService(store, build_notifier(settings), settings)
    try:
        yield
    finally:
        pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics", tags=["health"])
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(users_router)
