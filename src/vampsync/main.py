"""FastAPI application factory.

Learn: create_app() returns a configured FastAPI instance. The lifespan
builds the version store and the broadcaster from settings and keeps
them on app.state, so tests can build an app per test with fresh
in-memory backends.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vampsync import __version__
from vampsync.api import api_router
from vampsync.config import Settings, settings as default_settings
from vampsync.realtime.broadcast import Broadcaster, create_broadcaster
from vampsync.services.version_service import VersionService
from vampsync.sync.keys import default_mapper
from vampsync.versions.store import VersionStore, create_version_store

logger = structlog.get_logger()


def create_app(
    config: Optional[Settings] = None,
    version_store: Optional[VersionStore] = None,
    broadcaster: Optional[Broadcaster] = None,
) -> FastAPI:
    """Build and return the FastAPI application."""
    config = config or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown lifecycle."""
        logger.info(
            "vampsync.starting",
            version=__version__,
            environment=config.environment,
            version_backend=config.version_backend,
            broadcast_backend=config.broadcast_backend,
        )

        # Fails fast if the static registry is inconsistent
        mapper = default_mapper()

        store = version_store or create_version_store(
            config.version_backend, config.redis_url, config.versions_hash_key
        )
        fanout = broadcaster or create_broadcaster(
            config.broadcast_backend, config.redis_url, config.broadcast_channel
        )
        try:
            await fanout.ping()
        except Exception as e:
            logger.warning("vampsync.broadcaster_unavailable", error=str(e))
            # Polling still works without push

        app.state.config = config
        app.state.version_store = store
        app.state.broadcaster = fanout
        app.state.version_service = VersionService(store, fanout, mapper=mapper)

        yield

        logger.info("vampsync.shutdown")
        await fanout.close()
        await store.close()

    app = FastAPI(
        title="VAMP Sync",
        description="Data version counters and push notifications for the VAMP booking admin",
        version=__version__,
        debug=config.debug,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → NoStore → RequestId → handler

    from vampsync.middleware.cache_control import NoStoreMiddleware
    from vampsync.middleware.request_id import RequestIdMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(NoStoreMiddleware, path_prefixes=("/api/versions",))
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    from vampsync.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: vampsync.main:app)
app = create_app()
