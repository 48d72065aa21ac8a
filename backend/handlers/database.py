"""
Database connectivity probe.

Verifies at boot that the configured database endpoint accepts TCP
connections. Schema and queries belong to the chat handlers.
"""

from __future__ import annotations

import asyncio
from urllib.parse import urlsplit

from observability.logger import log_event

from handlers.base import Database


DEFAULT_PORTS: dict[str, int] = {
    "mongodb": 27017,
    "postgres": 5432,
    "postgresql": 5432,
    "mysql": 3306,
    "redis": 6379,
}


class DatabaseUnavailable(ConnectionError):
    """Raised when the database endpoint cannot be reached."""


class DatabaseProbe(Database):
    """TCP reachability check for DATABASE_URL. No URL means no database."""

    def __init__(self, url: str | None, *, timeout_s: float = 10.0) -> None:
        self._url = url
        self._timeout_s = timeout_s

    @staticmethod
    def endpoint(url: str) -> tuple[str, int]:
        """Return (host, port) for a database URL."""
        parts = urlsplit(url)
        if not parts.hostname:
            raise ValueError(f"database URL has no host: {url!r}")
        port = parts.port or DEFAULT_PORTS.get(parts.scheme.split("+")[0])
        if port is None:
            raise ValueError(f"database URL has no port: {url!r}")
        return parts.hostname, port

    async def connect_to_database(self) -> None:
        if not self._url:
            log_event({"event_type": "DATABASE_NOT_CONFIGURED"})
            return

        host, port = self.endpoint(self._url)
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=self._timeout_s,
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise DatabaseUnavailable(f"cannot reach database at {host}:{port}: {e!r}") from e

        writer.close()
        await writer.wait_closed()
        log_event({"event_type": "DATABASE_CONNECTED", "host": host, "port": port})
