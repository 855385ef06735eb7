from __future__ import annotations

from typing import TypeVar

from fastapi import HTTPException, status

from src.core.results import ErrorKind, Outcome

T = TypeVar("T")

_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.ENTITLEMENT: status.HTTP_403_FORBIDDEN,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.PROVIDER: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
}


def raise_for_outcome(outcome: Outcome[T]) -> T:
    """Return the outcome's value or raise the matching ``HTTPException``."""
    if outcome.ok:
        return outcome.value
    raise HTTPException(
        status_code=_STATUS_BY_KIND[outcome.error.kind],
        detail={"code": outcome.error.value, "message": outcome.detail or outcome.error.value},
    )
