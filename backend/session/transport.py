"""
Chat transport contract.

This module defines the *interface only* of the socket abstraction the
connection manager drives. The wire protocol itself lives behind it.

Key invariants:
- A transport instance is constructed once per connection attempt and is
  never restarted; reconnecting means constructing a new instance.
- Listeners are registered on `transport.ev` before `start()` is awaited.
- Listeners for one event name run sequentially in registration order, and
  one emit completes before the transport delivers the next frame.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping

from constants import (
    BROWSER_DESCRIPTOR,
    CONNECT_TIMEOUT_MS,
    DEFAULT_QUERY_TIMEOUT_MS,
    HIGH_QUALITY_LINK_PREVIEW,
    MARK_ONLINE_ON_CONNECT,
    MAX_REQUEST_RETRIES,
    PAIRING_QR_TIMEOUT_MS,
    RETRY_REQUEST_DELAY_MS,
)
from observability.logger import log_exception

from session.disconnect import extract_status_code


# ---------------------------------------------------------------------
# Event names
# ---------------------------------------------------------------------

CONNECTION_UPDATE = "connection.update"
CREDS_UPDATE = "creds.update"


class InboundEventKind(str, Enum):
    """
    Inbound protocol events forwarded to the EventRouter.

    Values are the event names used by the transport.
    """

    MESSAGE_BATCH = "messages.upsert"
    GROUP_PARTICIPANTS_CHANGE = "group-participants.update"
    GROUP_METADATA_CHANGE = "groups.update"


Listener = Callable[[Any], Awaitable[None]]


class TransportEvents:
    """
    Minimal async event emitter owned by a transport instance.

    A failing listener is logged and does not stop the remaining
    listeners for the same emit.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, name: str, listener: Listener) -> None:
        self._listeners.setdefault(name, []).append(listener)

    def listener_count(self, name: str) -> int:
        return len(self._listeners.get(name, ()))

    async def emit(self, name: str, payload: Any) -> None:
        for listener in list(self._listeners.get(name, ())):
            try:
                await listener(payload)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_exception("TRANSPORT_LISTENER_FAILED", exc, event=name)


# ---------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class ProtocolVersion:
    """Protocol version negotiated with the external service."""
    version: tuple[int, ...]
    is_latest: bool = True

    def __str__(self) -> str:
        return ".".join(str(part) for part in self.version)


@dataclass(frozen=True)
class TransportOptions:
    """
    Construction parameters for one transport instance.

    Only `version` and `credentials` vary between attempts; the
    operational parameters are fixed.
    """
    version: ProtocolVersion
    credentials: Mapping[str, Any] | None = None
    default_query_timeout_ms: int = DEFAULT_QUERY_TIMEOUT_MS
    connect_timeout_ms: int = CONNECT_TIMEOUT_MS
    retry_request_delay_ms: int = RETRY_REQUEST_DELAY_MS
    max_request_retries: int = MAX_REQUEST_RETRIES
    qr_timeout_ms: int = PAIRING_QR_TIMEOUT_MS
    mark_online_on_connect: bool = MARK_ONLINE_ON_CONNECT
    generate_high_quality_link_preview: bool = HIGH_QUALITY_LINK_PREVIEW
    browser: tuple[str, str, str] = BROWSER_DESCRIPTOR

    def to_wire(self) -> dict[str, Any]:
        """Serialize the options for the bridge handshake."""
        return {
            "version": list(self.version.version),
            "auth": dict(self.credentials) if self.credentials is not None else None,
            "defaultQueryTimeoutMs": self.default_query_timeout_ms,
            "connectTimeoutMs": self.connect_timeout_ms,
            "retryRequestDelayMs": self.retry_request_delay_ms,
            "maxRetries": self.max_request_retries,
            "qrTimeout": self.qr_timeout_ms,
            "markOnlineOnConnect": self.mark_online_on_connect,
            "generateHighQualityLinkPreview": self.generate_high_quality_link_preview,
            "browser": list(self.browser),
        }


@dataclass(frozen=True)
class ConnectionUpdate:
    """
    Parsed `connection.update` payload.

    connection is "connecting", "open", "close" or None (e.g. a QR-only
    update). status_code is set on close when the transport reported one.
    """
    connection: str | None = None
    status_code: int | None = None
    error: str | None = None
    qr: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    @staticmethod
    def from_payload(payload: Mapping[str, Any]) -> ConnectionUpdate:
        last_disconnect = payload.get("lastDisconnect")
        error: str | None = None
        if isinstance(last_disconnect, Mapping):
            raw_error = last_disconnect.get("error")
            if isinstance(raw_error, Mapping):
                error = raw_error.get("message")
            elif raw_error is not None:
                error = str(raw_error)
        else:
            last_disconnect = None

        known = {"connection", "lastDisconnect", "qr"}
        return ConnectionUpdate(
            connection=payload.get("connection"),
            status_code=extract_status_code(last_disconnect),
            error=error,
            qr=payload.get("qr"),
            extra={k: v for k, v in payload.items() if k not in known},
        )


# ---------------------------------------------------------------------
# Transport contract
# ---------------------------------------------------------------------

class TransportError(RuntimeError):
    """Raised when a transport cannot be constructed or started."""


class Transport(ABC):
    """
    Abstract interface for a chat transport.

    Implementations are responsible for:
    - Opening the underlying socket in start() and returning promptly;
      lifecycle progress is reported through `connection.update` events
    - Emitting `creds.update` whenever the credential set changes
    - Emitting the InboundEventKind events in delivery order

    Non-responsibilities:
    - No reconnection (ConnectionManager builds a fresh instance)
    - No routing to handlers
    """

    ev: TransportEvents

    @abstractmethod
    async def start(self) -> None:
        """Open the session. Raises on immediate failure."""
        raise NotImplementedError

    @abstractmethod
    async def send_message(self, jid: str, content: Mapping[str, Any]) -> Any:
        """Send one message to `jid`. Raises if it cannot be sent."""
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """Close the socket. Idempotent."""
        raise NotImplementedError


TransportFactory = Callable[[TransportOptions], Transport]
VersionFetcher = Callable[[], Awaitable[ProtocolVersion]]
