from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    ENTITLEMENT = "entitlement"
    CONFLICT = "conflict"
    PROVIDER = "provider"
    NOT_FOUND = "not_found"


class ErrorCode(str, Enum):
    INVALID_DOMAIN_FORMAT = "invalid_domain_format"
    INVALID_USERNAME = "invalid_username"
    DOMAIN_REJECTED = "domain_rejected"
    NOT_ENTITLED = "not_entitled"
    DOMAIN_ALREADY_BOUND = "domain_already_bound"
    TENANT_HAS_DOMAIN = "tenant_has_domain"
    BINDING_IN_PROGRESS = "binding_in_progress"
    USERNAME_TAKEN = "username_taken"
    USERNAME_LOCKED = "username_locked"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    UNKNOWN_TENANT = "unknown_tenant"
    UNKNOWN_CUSTOMER = "unknown_customer"
    UNKNOWN_BINDING = "unknown_binding"
    NOT_BOUND = "not_bound"

    @property
    def kind(self) -> ErrorKind:
        return _ERROR_KINDS[self]


_ERROR_KINDS: dict[ErrorCode, ErrorKind] = {
    ErrorCode.INVALID_DOMAIN_FORMAT: ErrorKind.VALIDATION,
    ErrorCode.INVALID_USERNAME: ErrorKind.VALIDATION,
    ErrorCode.DOMAIN_REJECTED: ErrorKind.VALIDATION,
    ErrorCode.NOT_ENTITLED: ErrorKind.ENTITLEMENT,
    ErrorCode.DOMAIN_ALREADY_BOUND: ErrorKind.CONFLICT,
    ErrorCode.TENANT_HAS_DOMAIN: ErrorKind.CONFLICT,
    ErrorCode.BINDING_IN_PROGRESS: ErrorKind.CONFLICT,
    ErrorCode.USERNAME_TAKEN: ErrorKind.CONFLICT,
    ErrorCode.USERNAME_LOCKED: ErrorKind.CONFLICT,
    ErrorCode.PROVIDER_UNAVAILABLE: ErrorKind.PROVIDER,
    ErrorCode.UNKNOWN_TENANT: ErrorKind.NOT_FOUND,
    ErrorCode.UNKNOWN_CUSTOMER: ErrorKind.NOT_FOUND,
    ErrorCode.UNKNOWN_BINDING: ErrorKind.NOT_FOUND,
    ErrorCode.NOT_BOUND: ErrorKind.NOT_FOUND,
}


@dataclass(slots=True, frozen=True)
class Outcome(Generic[T]):
    """Result of a core operation.

    Expected conditions (validation, conflicts, missing entitlement, provider
    trouble) come back as an ``error`` code; only infrastructure faults raise.
    A failed outcome may still carry a ``value``, e.g. the failed verification
    record after a provider rejection.
    """

    value: T | None = None
    error: ErrorCode | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T | None = None) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(
        cls,
        error: ErrorCode,
        detail: str | None = None,
        value: T | None = None,
    ) -> "Outcome[T]":
        return cls(value=value, error=error, detail=detail)
