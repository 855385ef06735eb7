from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TypeVar

import requests

T = TypeVar("T")


class ProviderError(RuntimeError):
    """An external provider call failed or timed out. Safe to retry."""

    def __init__(self, provider: str, message: str, *, status_code: int | None = None) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message
        self.status_code = status_code


async def call_provider(
    provider: str,
    func: Callable[..., T],
    *args: object,
    timeout: float,
) -> T:
    """Run a blocking provider call in a worker thread with a hard deadline."""
    try:
        return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=timeout)
    except ProviderError:
        raise
    except (asyncio.TimeoutError, requests.Timeout) as exc:
        raise ProviderError(provider, "request timed out") from exc
    except requests.RequestException as exc:
        raise ProviderError(provider, f"request failed: {exc.__class__.__name__}") from exc


def error_payload(response: requests.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    if not isinstance(body, dict):
        return {}
    error = body.get("error")
    return error if isinstance(error, dict) else {}
