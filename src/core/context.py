from __future__ import annotations

from contextvars import ContextVar, Token
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from src.core.resolver import ResolvedHost

_CURRENT_RESOLVED_HOST: Final[ContextVar["ResolvedHost | None"]] = ContextVar(
    "current_resolved_host",
    default=None,
)


def set_current_resolved_host(resolved: "ResolvedHost | None") -> Token:
    return _CURRENT_RESOLVED_HOST.set(resolved)


def get_current_resolved_host() -> "ResolvedHost | None":
    return _CURRENT_RESOLVED_HOST.get()


def get_current_tenant_id() -> str | None:
    resolved = _CURRENT_RESOLVED_HOST.get()
    if resolved is None or resolved.tenant is None:
        return None
    return resolved.tenant.id


def reset_current_resolved_host(token: Token) -> None:
    _CURRENT_RESOLVED_HOST.reset(token)
