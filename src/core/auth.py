from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import requests
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from src.core.config import settings
from src.core.services import CoreServices, get_services

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=True)


@dataclass(slots=True)
class AuthContext:
    """The signed-in tenant. Session tokens carry the tenant id in a single claim."""

    tenant_id: str
    subject: str
    email: str | None = None


class JwksCache:
    """Caches the identity provider's key set; a forced refresh picks up rotated keys."""

    def __init__(self, ttl_seconds: int = 300, min_refresh_interval_seconds: int = 30) -> None:
        self.ttl_seconds = ttl_seconds
        self.min_refresh_interval_seconds = min_refresh_interval_seconds
        self._jwks: dict | None = None
        self._fetched_at = 0.0

    def get(self, url: str, *, force: bool = False) -> dict:
        now = time.time()
        age = now - self._fetched_at
        stale = self._jwks is None or age > self.ttl_seconds
        if stale or (force and age > self.min_refresh_interval_seconds):
            response = requests.get(url, timeout=settings.auth_jwks_timeout_seconds)
            response.raise_for_status()
            self._jwks = response.json()
            self._fetched_at = now
        return self._jwks

    def find_key(self, url: str, kid: str) -> dict | None:
        for refresh in (False, True):
            for key in self.get(url, force=refresh).get("keys", []):
                if key.get("kid") == kid:
                    return key
        return None


jwks_cache = JwksCache()


def _get_signing_key(token: str) -> dict:
    try:
        unverified_header = jwt.get_unverified_header(token)
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication header",
        ) from exc

    kid = unverified_header.get("kid")
    if not kid:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="JWT is missing key id",
        )

    key = jwks_cache.find_key(settings.auth_jwks_url, kid)
    if key is None:
        logger.warning("No signing key matches kid=%s", kid)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No matching signing key found",
        )
    return key


def _decode_jwt(token: str) -> dict:
    key = _get_signing_key(token)

    try:
        return jwt.decode(
            token,
            key,
            algorithms=settings.auth_algorithms(),
            issuer=settings.auth_issuer,
            audience=settings.auth_audience or None,
            options={"verify_aud": bool(settings.auth_audience)},
        )
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        ) from exc


async def require_auth_context(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    services: CoreServices = Depends(get_services),
) -> AuthContext:
    claims = _decode_jwt(credentials.credentials)

    tenant_id = claims.get(settings.auth_tenant_claim)
    subject = claims.get("sub")
    if not tenant_id or not subject:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token is missing required claims",
        )

    tenant = await services.directory.get(str(tenant_id))
    if tenant is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is not provisioned",
        )

    request.state.tenant_id = tenant.id
    request.state.auth_claims = claims
    return AuthContext(tenant_id=tenant.id, subject=subject, email=tenant.email)
