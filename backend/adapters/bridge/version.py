"""
Latest protocol version negotiation.

The version endpoint returns JSON of the form {"version": [2, 3000, 1015901307]}.
Any failure (network, status, shape) falls back to the bundled default with
is_latest=False; negotiation never blocks a connection attempt.
"""

from __future__ import annotations

from typing import Any

import httpx

from constants import DEFAULT_PROTOCOL_VERSION, VERSION_FETCH_TIMEOUT_S
from observability.logger import log_event, log_exception

from session.transport import ProtocolVersion, VersionFetcher


def _parse_version(body: Any) -> tuple[int, ...] | None:
    if not isinstance(body, dict):
        return None
    raw = body.get("version")
    if not isinstance(raw, list) or not raw:
        return None
    if not all(isinstance(part, int) and not isinstance(part, bool) for part in raw):
        return None
    return tuple(raw)


async def fetch_latest_version(
    url: str | None,
    *,
    client: httpx.AsyncClient | None = None,
) -> ProtocolVersion:
    """
    Fetch the latest protocol version from `url`.

    Args:
        url: Version endpoint. None skips the request.
        client: Optional shared client (tests pass one with a mock transport).
    """
    fallback = ProtocolVersion(version=DEFAULT_PROTOCOL_VERSION, is_latest=False)
    if not url:
        return fallback

    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=VERSION_FETCH_TIMEOUT_S)
    try:
        response = await http.get(url)
        response.raise_for_status()
        version = _parse_version(response.json())
    except (httpx.HTTPError, ValueError) as exc:
        log_exception("VERSION_FETCH_FAILED", exc, url=url)
        return fallback
    finally:
        if owns_client:
            await http.aclose()

    if version is None:
        log_event({
            "event_type": "VERSION_FETCH_FAILED",
            "level": "error",
            "url": url,
            "message": "unexpected response shape",
        })
        return fallback

    return ProtocolVersion(version=version, is_latest=True)


def version_fetcher(url: str | None) -> VersionFetcher:
    """Bind a version URL into a VersionFetcher."""
    async def _fetch() -> ProtocolVersion:
        return await fetch_latest_version(url)
    return _fetch
