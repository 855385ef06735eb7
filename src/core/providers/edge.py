from __future__ import annotations

import logging
from dataclasses import dataclass

import requests

from src.core.providers.base import ProviderError, call_provider, error_payload

logger = logging.getLogger(__name__)

PROVIDER = "vercel"
CNAME_TARGET = "cname.vercel-dns.com"
A_RECORD_TARGET = "76.76.19.61"


@dataclass(slots=True, frozen=True)
class EdgeRegistration:
    accepted: bool
    reason: str | None = None


@dataclass(slots=True, frozen=True)
class EdgeDomainStatus:
    verified: bool
    configured: bool = False
    reason: str | None = None


def dns_instructions(domain: str) -> str:
    return (
        f"DNS records do not point at the platform yet. Create a CNAME record pointing {domain} "
        f"to {CNAME_TARGET}, or an A record pointing {domain} to {A_RECORD_TARGET}"
    )


class VercelEdgeClient:
    """Registers portfolio domains on the hosting project."""

    def __init__(
        self,
        *,
        api_token: str,
        project_id: str,
        team_id: str = "",
        base_url: str = "https://api.vercel.com",
        timeout_seconds: float = 8.0,
    ) -> None:
        self.api_token = api_token
        self.project_id = project_id
        self.team_id = team_id
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    @property
    def configured(self) -> bool:
        return bool(self.api_token and self.project_id)

    def _ensure_configured(self) -> None:
        if not self.api_token:
            raise ProviderError(PROVIDER, "VERCEL_API_TOKEN is not configured")
        if not self.project_id:
            raise ProviderError(PROVIDER, "VERCEL_PROJECT_ID is not configured")

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_token}"}

    def _params(self) -> dict[str, str]:
        return {"teamId": self.team_id} if self.team_id else {}

    def _raise_for_outage(self, response: requests.Response, action: str) -> None:
        if response.status_code == 401:
            raise ProviderError(PROVIDER, "authentication failed", status_code=401)
        if response.status_code == 403:
            raise ProviderError(PROVIDER, "access denied for project", status_code=403)
        if response.status_code == 429 or response.status_code >= 500:
            raise ProviderError(
                PROVIDER,
                f"{action} failed with status {response.status_code}",
                status_code=response.status_code,
            )

    def register_domain_sync(self, domain: str) -> EdgeRegistration:
        self._ensure_configured()
        response = requests.post(
            f"{self.base_url}/v10/projects/{self.project_id}/domains",
            headers=self._headers(),
            params=self._params(),
            json={"name": domain},
            timeout=self.timeout_seconds,
        )
        if response.ok:
            return EdgeRegistration(accepted=True)

        self._raise_for_outage(response, "register domain")
        error = error_payload(response)
        if error.get("code") == "domain_already_exists":
            # Already attached to this project, e.g. a retried request.
            return EdgeRegistration(accepted=True)
        return EdgeRegistration(
            accepted=False,
            reason=error.get("message") or f"Failed to add domain: {response.reason}",
        )

    def get_domain_status_sync(self, domain: str) -> EdgeDomainStatus:
        self._ensure_configured()
        response = requests.get(
            f"{self.base_url}/v9/projects/{self.project_id}/domains/{domain}",
            headers=self._headers(),
            params=self._params(),
            timeout=self.timeout_seconds,
        )
        if response.status_code == 404:
            return EdgeDomainStatus(verified=False, reason="Domain is not registered with the project")
        self._raise_for_outage(response, "get domain")
        if not response.ok:
            error = error_payload(response)
            raise ProviderError(
                PROVIDER,
                error.get("message") or f"get domain failed with status {response.status_code}",
                status_code=response.status_code,
            )
        verified = response.json().get("verified") is True

        config = requests.get(
            f"{self.base_url}/v6/domains/{domain}/config",
            headers=self._headers(),
            params=self._params(),
            timeout=self.timeout_seconds,
        )
        self._raise_for_outage(config, "get domain config")
        configured = config.ok and config.json().get("misconfigured") is False

        reason = None
        if not verified:
            reason = "Domain ownership is not verified yet"
        elif not configured:
            reason = dns_instructions(domain)
        return EdgeDomainStatus(verified=verified and configured, configured=configured, reason=reason)

    def remove_domain_sync(self, domain: str) -> None:
        self._ensure_configured()
        response = requests.delete(
            f"{self.base_url}/v9/projects/{self.project_id}/domains/{domain}",
            headers=self._headers(),
            params=self._params(),
            timeout=self.timeout_seconds,
        )
        if response.ok or response.status_code == 404:
            return
        self._raise_for_outage(response, "remove domain")
        error = error_payload(response)
        if error.get("code") == "not_found":
            return
        raise ProviderError(
            PROVIDER,
            error.get("message") or f"remove domain failed with status {response.status_code}",
            status_code=response.status_code,
        )

    async def register_domain(self, domain: str) -> EdgeRegistration:
        return await call_provider(PROVIDER, self.register_domain_sync, domain, timeout=self.timeout_seconds)

    async def get_domain_status(self, domain: str) -> EdgeDomainStatus:
        # Two sequential requests share the deadline budget.
        return await call_provider(
            PROVIDER, self.get_domain_status_sync, domain, timeout=self.timeout_seconds * 2
        )

    async def remove_domain(self, domain: str) -> None:
        await call_provider(PROVIDER, self.remove_domain_sync, domain, timeout=self.timeout_seconds)
