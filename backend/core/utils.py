"""
Utility functions for the Flowline workflow engine.

Includes:
- UTC datetime helpers
- Request header helpers (caller IP, header sanitizing)
- UUID normalization
"""

from datetime import datetime, timezone
from typing import Mapping, Optional
from uuid import UUID

from core.constants import SENSITIVE_HEADER_MARKERS


def utc_now() -> datetime:
    """
    Get the current UTC datetime.

    Returns:
        Current datetime in UTC timezone
    """
    return datetime.now(timezone.utc)


def normalize_uuid(value: str) -> Optional[str]:
    """Canonical lower-case hyphenated form of ``value``, or None if it is not a UUID.

    Accepts any spelling UUID() does (upper case, braces, no hyphens).
    """
    try:
        return str(UUID(str(value)))
    except (ValueError, TypeError, AttributeError):
        return None


def get_client_ip(headers: Mapping[str, str]) -> str:
    """
    Caller IP as reported by the proxy chain.

    First entry of X-Forwarded-For, else X-Real-IP, else "unknown".
    Header names are expected lower-cased (as Starlette provides them).
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = (headers.get("x-real-ip") or "").strip()
    return real_ip or "unknown"


def sanitize_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Copy of ``headers`` without credentials (authorization, cookies)."""
    return {
        name: value
        for name, value in headers.items()
        if not any(marker in name.lower() for marker in SENSITIVE_HEADER_MARKERS)
    }
