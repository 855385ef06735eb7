from __future__ import annotations

from pydantic import BaseModel


class ResolveResponse(BaseModel):
    host: str
    classification: str
    found: bool
    tenant_id: str | None = None
    username: str | None = None
    show_branding: bool = True


class InvalidateResponse(BaseModel):
    keys: list[str]
