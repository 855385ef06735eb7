from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class DomainRequest(BaseModel):
    domain: str = Field(min_length=3, max_length=253)


class VerificationResponse(BaseModel):
    domain: str
    state: str
    requested_at: datetime
    last_checked_at: datetime | None = None
    completed_at: datetime | None = None
    failure_reason: str | None = None


class DomainStatusResponse(BaseModel):
    domain: str | None = None
    state: str | None = None
    verified_at: datetime | None = None
    failure_reason: str | None = None
    entitled: bool
    serving: bool


class DomainRemovedResponse(BaseModel):
    domain: str
    removed: bool
