from __future__ import annotations

from pydantic import BaseModel, Field


class UsernameRequest(BaseModel):
    username: str = Field(min_length=3, max_length=20)


class UsernameResponse(BaseModel):
    tenant_id: str
    username: str


class UsernameAvailabilityResponse(BaseModel):
    username: str
    available: bool


class AccountDeletedResponse(BaseModel):
    tenant_id: str
    deleted: bool
    removed_domain: str | None = None
