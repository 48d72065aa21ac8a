"""
Connection lifecycle manager.

Responsibilities:
- Owns the single logical chat session and its ConnectionState
- Builds one transport per connection attempt and subscribes to it once
- Classifies disconnects and applies the bounded retry policy
- Schedules reconnects on a deferred timer (never a blocking wait)
- Triggers the startup notification on the first open of its lifetime
- Requests process termination on logout or retry exhaustion

Still NOT responsible for:
- The wire protocol (Transport)
- Credential file format (CredentialStore)
- Handler business logic (EventRouter collaborators)
- Actually exiting the process (on_terminate callback)
"""

from __future__ import annotations

import asyncio
from functools import partial
from typing import Any, Callable, Mapping

from config import AppConfig
from constants import EXIT_CODE_FATAL
from observability.logger import log_event, log_exception

from session.connection_status import (
    ConnectionState,
    InvalidTransition,
    can_transition,
)
from session.credentials import CredentialStore
from session.disconnect import classify_disconnect
from session.notifier import StartupNotifier
from session.retry import RetryPolicy
from session.router import EventRouter
from session.transport import (
    CONNECTION_UPDATE,
    CREDS_UPDATE,
    ConnectionUpdate,
    InboundEventKind,
    Transport,
    TransportFactory,
    TransportOptions,
    VersionFetcher,
)


Scheduler = Callable[[float, Callable[[], None]], Any]
TerminateFn = Callable[[int], None]


def _call_later(delay_s: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
    return asyncio.get_running_loop().call_later(delay_s, callback)


# connect() is a no-op in these states
_CONNECT_BLOCKED = frozenset({
    ConnectionState.CONNECTING,
    ConnectionState.OPEN,
    ConnectionState.TERMINATED,
})


class ConnectionManager:
    """
    State machine for the one logical session.

    IDLE -> CONNECTING -> OPEN -> CLOSED -> CONNECTING ... -> TERMINATED

    The CONNECTING state is the reentrancy guard: overlapping connect()
    calls collapse into the attempt in flight. Events from a transport
    that has been superseded by a newer attempt are ignored.

    The retry counter counts failed attempts since the last OPEN. Each
    failure increments it first; a reconnect is scheduled only while
    RetryPolicy.should_retry(counter) holds, otherwise the manager
    terminates.
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        credential_store: CredentialStore,
        router: EventRouter,
        notifier: StartupNotifier,
        transport_factory: TransportFactory,
        fetch_version: VersionFetcher,
        on_terminate: TerminateFn,
        retry_policy: RetryPolicy | None = None,
        schedule: Scheduler = _call_later,
    ) -> None:
        self._config = config
        self._store = credential_store
        self._router = router
        self._notifier = notifier
        self._transport_factory = transport_factory
        self._fetch_version = fetch_version
        self._on_terminate = on_terminate
        self._policy = retry_policy or RetryPolicy()
        self._schedule = schedule

        self._state = ConnectionState.IDLE
        self._retry_count = 0
        self._has_opened = False

        self._transport: Transport | None = None
        self._reconnect_handle: Any = None
        self._reconnect_task: asyncio.Task[Transport | None] | None = None
        self._notify_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def transport(self) -> Transport | None:
        return self._transport

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    @property
    def reconnect_task(self) -> asyncio.Task[Transport | None] | None:
        """Task running the most recent timer-fired connect(), if any."""
        return self._reconnect_task

    @property
    def startup_notification(self) -> asyncio.Task[None] | None:
        """Task sending the first-open owner notifications, if started."""
        return self._notify_task

    def log_context(self) -> dict[str, Any]:
        return {
            "connection_state": self._state.value,
            "retry_count": self._retry_count,
        }

    # ------------------------------------------------------------------
    # Connect
    # ------------------------------------------------------------------

    async def connect(self) -> Transport | None:
        """
        Start one connection attempt.

        Returns the started transport, or None when the call was a no-op
        (attempt already in flight, session open, or terminated) or the
        attempt failed before the transport started.
        """
        if self._state in _CONNECT_BLOCKED:
            log_event({
                "event_type": "CONNECT_SKIPPED",
                **self.log_context(),
            })
            return None

        self._transition(ConnectionState.CONNECTING)
        self._reconnect_handle = None

        # A bridge may report close while its socket stays up
        previous = self._transport
        self._transport = None
        if previous is not None:
            await self._close_quietly(previous)

        transport: Transport | None = None
        try:
            credentials = self._store.load()
            version = await self._fetch_version()
            log_event({
                "event_type": "CONNECT_ATTEMPT",
                "protocol_version": str(version),
                "is_latest": version.is_latest,
                "has_credentials": credentials is not None,
                **self.log_context(),
            })

            transport = self._transport_factory(
                TransportOptions(version=version, credentials=credentials)
            )
            self._subscribe(transport)
            self._transport = transport

            await transport.start()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_exception("CONNECT_FAILED", exc, **self.log_context())
            if transport is not None and transport is self._transport:
                self._transport = None
                await self._close_quietly(transport)

            # A close event may already have been handled during start()
            if self._state is ConnectionState.CONNECTING:
                self._transition(ConnectionState.CLOSED)
                self._handle_failed_attempt(cause="connect_error")
            return None

        return transport

    async def shutdown(self) -> None:
        """Cancel any pending reconnect and close the current transport."""
        self._cancel_reconnect()
        transport = self._transport
        self._transport = None
        if transport is not None:
            await self._close_quietly(transport)

    # ------------------------------------------------------------------
    # Subscriptions (exactly once per transport instance)
    # ------------------------------------------------------------------

    def _subscribe(self, transport: Transport) -> None:
        transport.ev.on(CONNECTION_UPDATE, partial(self._on_connection_update, transport))
        transport.ev.on(CREDS_UPDATE, partial(self._on_creds_update, transport))
        for kind in InboundEventKind:
            transport.ev.on(kind.value, partial(self._on_inbound, transport, kind))

    def _is_current(self, transport: Transport) -> bool:
        return transport is self._transport

    async def _on_connection_update(self, transport: Transport, payload: Any) -> None:
        if not self._is_current(transport):
            log_event({"event_type": "STALE_TRANSPORT_EVENT", "event": CONNECTION_UPDATE})
            return
        if not isinstance(payload, Mapping):
            return

        update = ConnectionUpdate.from_payload(payload)

        if update.qr:
            log_event({"event_type": "PAIRING_QR", "qr": update.qr})

        if update.connection == "close":
            self._handle_close(update)
        elif update.connection == "open":
            self._handle_open(transport)

    async def _on_creds_update(self, transport: Transport, update: Any) -> None:
        if not self._is_current(transport):
            return
        if isinstance(update, Mapping):
            self._store.persist(update)

    async def _on_inbound(
        self,
        transport: Transport,
        kind: InboundEventKind,
        payload: Any,
    ) -> None:
        if not self._is_current(transport):
            return
        await self._router.route(kind, transport, payload)

    # ------------------------------------------------------------------
    # Lifecycle events
    # ------------------------------------------------------------------

    def _handle_close(self, update: ConnectionUpdate) -> None:
        if self._state not in (ConnectionState.CONNECTING, ConnectionState.OPEN):
            return

        reason = classify_disconnect(update.status_code)
        self._transition(ConnectionState.CLOSED)
        log_event({
            "event_type": "CONNECTION_CLOSED",
            "reason": reason.name,
            "status_code": update.status_code,
            "error": update.error,
            **self.log_context(),
        })

        if reason.is_terminal:
            self._terminate(cause="logged_out")
            return

        self._handle_failed_attempt(cause=reason.name.lower())

    def _handle_open(self, transport: Transport) -> None:
        if self._state is not ConnectionState.CONNECTING:
            return

        self._retry_count = 0
        self._transition(ConnectionState.OPEN)
        log_event({"event_type": "CONNECTION_OPEN", **self.log_context()})

        if not self._has_opened:
            self._has_opened = True
            # Sends are acknowledged through the same transport event
            # stream, so they must not run inside this listener.
            self._notify_task = asyncio.create_task(self._notify_owners(transport))

    async def _notify_owners(self, transport: Transport) -> None:
        for jid in self._config.owner_numbers:
            try:
                await self._notifier.notify(transport, jid)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_exception("STARTUP_MESSAGE_FAILED", exc, jid=jid)

    # ------------------------------------------------------------------
    # Retry / termination
    # ------------------------------------------------------------------

    def _handle_failed_attempt(self, *, cause: str) -> None:
        self._retry_count += 1

        if not self._policy.should_retry(self._retry_count):
            self._terminate(cause="retries_exhausted")
            return

        log_event({
            "event_type": "RECONNECT_SCHEDULED",
            "cause": cause,
            "attempt": self._retry_count,
            "delay_ms": self._policy.delay_ms(),
        })
        self._reconnect_handle = self._schedule(self._policy.delay_s(), self._fire_reconnect)

    def _fire_reconnect(self) -> None:
        self._reconnect_handle = None
        self._reconnect_task = asyncio.ensure_future(self.connect())

    def _cancel_reconnect(self) -> None:
        handle = self._reconnect_handle
        self._reconnect_handle = None
        if handle is not None:
            handle.cancel()

    def _terminate(self, *, cause: str) -> None:
        if self._state is ConnectionState.TERMINATED:
            return

        self._cancel_reconnect()
        self._transition(ConnectionState.TERMINATED)
        log_event({
            "event_type": "CONNECTION_TERMINATED",
            "level": "error",
            "cause": cause,
            **self.log_context(),
        })
        self._on_terminate(EXIT_CODE_FATAL)

    def _transition(self, target: ConnectionState) -> None:
        if not can_transition(self._state, target):
            raise InvalidTransition(self._state, target)
        self._state = target

    @staticmethod
    async def _close_quietly(transport: Transport) -> None:
        try:
            await transport.close()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_exception("TRANSPORT_CLOSE_FAILED", exc)
