from __future__ import annotations

import asyncio
import contextlib
import logging

from fastapi import FastAPI

from src.api.middleware import host_resolution_middleware
from src.api.routes.account import router as account_router
from src.api.routes.billing import router as billing_router
from src.api.routes.domains import router as domains_router
from src.api.routes.sites import router as sites_router
from src.api.routes.webhooks import router as webhooks_router
from src.core.config import settings
from src.core.services import CoreServices, build_services


def create_app(services: CoreServices | None = None) -> FastAPI:
    """Build the API app; ``services`` are built from settings at startup when omitted."""
    app = FastAPI(title="Folio Portfolio Platform")
    app.state.services = services
    app.state.listener_task = None

    app.middleware("http")(host_resolution_middleware)
    app.include_router(domains_router, prefix="/api/v1")
    app.include_router(billing_router, prefix="/api/v1")
    app.include_router(account_router, prefix="/api/v1")
    app.include_router(sites_router, prefix="/api/v1")
    app.include_router(webhooks_router, prefix="/api/v1")

    @app.on_event("startup")
    async def startup_event() -> None:
        logging.basicConfig(level=logging.INFO)
        if app.state.services is None:
            app.state.services = build_services(settings)
        listener = app.state.services.listener
        if listener is not None:
            app.state.listener_task = asyncio.create_task(listener.run())

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        current: CoreServices | None = app.state.services
        if current is None:
            return
        if current.listener is not None:
            current.listener.stop()
        task: asyncio.Task[None] | None = app.state.listener_task
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await current.aclose()

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
