from __future__ import annotations

import asyncio
import contextlib
import logging

from fastapi import FastAPI

from src.agents.health import AgentHealth
from src.core.binding import DomainBindingManager
from src.core.config import settings
from src.core.services import CoreServices, build_services

logger = logging.getLogger(__name__)


class VerificationPollerAgent:
    """Re-checks pending custom-domain verifications and expires stale attempts."""

    def __init__(
        self,
        bindings: DomainBindingManager,
        *,
        interval_seconds: float = 300,
        batch_size: int = 50,
        max_retry_delay_seconds: float = 300,
    ) -> None:
        self.bindings = bindings
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size
        self.max_retry_delay_seconds = max_retry_delay_seconds
        self.health = AgentHealth(name="verification-poller", ready=True)
        self._stop_event = asyncio.Event()

    def stop(self) -> None:
        self._stop_event.set()

    async def poll_once(self) -> int:
        self.health.mark_run()
        checked = await self.bindings.poll_pending(limit=self.batch_size)
        self.health.increment("verifications_checked", checked)
        self.health.mark_success()
        return checked

    async def run(self) -> None:
        retry_delay = 1.0
        while not self._stop_event.is_set():
            try:
                checked = await self.poll_once()
                if checked:
                    logger.info("Checked %s pending domain verifications", checked)
                retry_delay = 1.0
                delay = self.interval_seconds
            except Exception as exc:  # pragma: no cover - operational path
                self.health.mark_error(exc)
                logger.exception("Verification poll cycle failed")
                delay = retry_delay
                retry_delay = min(retry_delay * 2, self.max_retry_delay_seconds)

            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)


app = FastAPI(title="Folio Verification Poller")


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO)
    services = build_services(settings)
    agent = VerificationPollerAgent(
        services.bindings,
        interval_seconds=settings.verification_poll_interval_seconds,
        batch_size=settings.verification_poll_batch_size,
    )
    app.state.services = services
    app.state.agent = agent
    app.state.task = asyncio.create_task(agent.run())


@app.on_event("shutdown")
async def shutdown_event() -> None:
    agent: VerificationPollerAgent = app.state.agent
    agent.stop()
    task: asyncio.Task[None] = app.state.task
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
    services: CoreServices = app.state.services
    await services.aclose()


@app.get("/health", tags=["system"])
async def health() -> dict[str, object]:
    agent: VerificationPollerAgent | None = getattr(app.state, "agent", None)
    if agent is None:
        return {"name": "verification-poller", "healthy": False, "ready": False}
    return agent.health.payload()


@app.get("/ready", tags=["system"])
async def ready() -> dict[str, bool]:
    agent: VerificationPollerAgent | None = getattr(app.state, "agent", None)
    return {"ready": agent is not None and agent.health.ready}
