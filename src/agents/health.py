from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class AgentHealth:
    """Liveness snapshot for a background worker, served from its /health route."""

    name: str
    healthy: bool = False
    ready: bool = False
    consecutive_failures: int = 0
    last_error: str | None = None
    last_success_at: datetime | None = None
    last_run_at: datetime | None = None
    metrics: dict[str, int] = field(default_factory=dict)
    clock: Callable[[], datetime] = field(default=_utcnow, repr=False)

    def mark_run(self) -> None:
        self.last_run_at = self.clock()

    def mark_success(self) -> None:
        self.healthy = True
        self.ready = True
        self.consecutive_failures = 0
        self.last_error = None
        self.last_success_at = self.clock()

    def mark_error(self, error: Exception) -> None:
        self.healthy = False
        self.consecutive_failures += 1
        self.last_error = f"{type(error).__name__}: {error}"

    def increment(self, metric: str, by: int = 1) -> None:
        self.metrics[metric] = self.metrics.get(metric, 0) + by

    def payload(self) -> dict[str, object]:
        return {
            "name": self.name,
            "healthy": self.healthy,
            "ready": self.ready,
            "consecutive_failures": self.consecutive_failures,
            "last_error": self.last_error,
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "metrics": dict(self.metrics),
        }
