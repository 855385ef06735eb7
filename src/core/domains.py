from __future__ import annotations

import re

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{3,20}$")
DOMAIN_PATTERN = re.compile(
    r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?(\.[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?)+$"
)

# Route names on the primary domain that can never be portfolio usernames.
RESERVED_USERNAMES = frozenset(
    {
        "admin",
        "posts",
        "privacy-policy",
        "terms-of-use",
        "about",
        "contact",
        "dashboard",
        "featured",
        "network",
        "login",
        "sign-in",
        "sign-up",
        "sign-out",
        "api",
        "onboarding",
        "_next",
        "_sites",
        "privacy",
        "terms",
        "www",
    }
)


def normalize_host(host: str | None) -> str:
    """Lowercase, drop the port and any trailing dot."""
    value = (host or "").strip().lower()
    if value.startswith("["):
        # IPv6 literal, keep the bracketed address
        end = value.find("]")
        return value[: end + 1] if end != -1 else value
    value = value.split(":", 1)[0]
    return value.rstrip(".")


def normalize_domain(domain: str | None) -> str:
    value = normalize_host(domain)
    if value.startswith("www."):
        value = value[len("www.") :]
    return value


def normalize_username(username: str | None) -> str:
    return (username or "").strip().lower()


def is_valid_username(username: str | None) -> bool:
    value = (username or "").strip()
    return bool(USERNAME_PATTERN.match(value)) and value.lower() not in RESERVED_USERNAMES


def is_platform_domain(domain: str, primary_domain: str) -> bool:
    return domain == primary_domain or domain.endswith(f".{primary_domain}")


def validate_custom_domain(domain: str | None, primary_domain: str) -> str | None:
    """Return a reason the domain cannot be bound, or None when it is acceptable.

    Expects an already normalized domain.
    """
    if not domain:
        return "Domain is required"
    if len(domain) < 3:
        return "Domain must be at least 3 characters"
    if len(domain) > 253:
        return "Domain is too long"
    if not DOMAIN_PATTERN.match(domain):
        return "Invalid domain format"
    if is_platform_domain(domain, primary_domain):
        return "Cannot use the main domain or its subdomains"
    return None
