# headerapp/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI

from headerapp.engine import HeaderResolutionEngine
from headerapp.events import AppSecretSavedEvent, EventBus, get_bus
from headerapp.middleware.header_inject import install_header_injection
from headerapp.routes.admin_sites import router as admin_sites_router
from headerapp.routes.metrics import router as metrics_router
from headerapp.secrets_store import SecretStore, build_secret_store
from headerapp.settings import HeaderAppSettings, get_settings
from headerapp.telemetry.logging import configure_root_logging

log = logging.getLogger(__name__)


def _start(app: FastAPI) -> None:
    engine: HeaderResolutionEngine = app.state.engine
    bus: EventBus = app.state.bus

    # drop anything parsed before this lifecycle began
    engine.invalidate()

    log.info("Subscribing to header app save event", extra={"app_key": engine.key})
    bus.subscribe(AppSecretSavedEvent, engine)


def _stop(app: FastAPI) -> None:
    engine: HeaderResolutionEngine = app.state.engine
    bus: EventBus = app.state.bus
    log.info("Unsubscribing to header app save event", extra={"app_key": engine.key})
    bus.unsubscribe(engine.key)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_root_logging(app.state.settings.log_level)
    _start(app)
    try:
        yield
    finally:
        _stop(app)


def create_app(
    settings: Optional[HeaderAppSettings] = None,
    *,
    store: Optional[SecretStore] = None,
    bus: Optional[EventBus] = None,
    engine: Optional[HeaderResolutionEngine] = None,
) -> FastAPI:
    settings = settings or get_settings()
    bus = bus or get_bus()
    if engine is None:
        store = store if store is not None else build_secret_store(settings, bus=bus)
        engine = HeaderResolutionEngine(
            store,
            app_key=settings.app_key,
            metadata_key=settings.metadata_key,
            acting_user=settings.acting_user,
        )
    app = FastAPI(title="Header App", lifespan=_lifespan)
    app.state.settings = settings
    app.state.bus = bus
    app.state.engine = engine
    app.state.secret_store = engine.store

    @app.get("/health", tags=["ops"])
    def health() -> dict[str, Any]:
        return {
            "ok": True,
            "cached_sites": sorted(engine.cache.sites()),
            "subscribed": engine in bus.subscribers(AppSecretSavedEvent),
        }

    app.include_router(admin_sites_router)
    if settings.metrics_enabled:
        app.include_router(metrics_router)

    install_header_injection(
        app,
        lambda: app.state.engine,
        exclude_paths=settings.exclude_paths,
        site_header=settings.site_header,
    )
    return app
