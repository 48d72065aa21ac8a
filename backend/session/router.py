"""
Inbound event router.

Responsibilities:
- Fan each inbound protocol event out to the message handler and the
  generic event handler
- Isolate failures per handler invocation
- Serialize routing so one event completes before the next starts

Non-responsibilities:
- No interpretation of payloads beyond locating the items to route
- No retries, no reordering, no batching
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Mapping

from observability.logger import log_event, log_exception

from handlers.base import EventHandler, MessageHandler
from session.transport import InboundEventKind, Transport


# Generic event names passed to EventHandler.handle_event
EVENT_MESSAGE = "message"
EVENT_GROUP_MEMBER_JOIN = "groupMemberJoin"
EVENT_GROUP_UPDATE = "groupUpdate"

# Only live deliveries are routed; history syncs ("append") are skipped
MESSAGE_BATCH_TYPE_NOTIFY = "notify"


class EventRouter:
    """
    Routes InboundEventKind events to the two collaborators.

    For every routed item the message handler runs first, then the event
    handler. A raised exception in either is logged as HANDLER_FAILED and
    routing continues.
    """

    def __init__(
        self,
        *,
        message_handler: MessageHandler,
        event_handler: EventHandler,
    ) -> None:
        self._messages = message_handler
        self._events = event_handler
        self._lock = asyncio.Lock()

    async def route(
        self,
        kind: InboundEventKind,
        connection: Transport,
        payload: Any,
    ) -> None:
        async with self._lock:
            if kind is InboundEventKind.MESSAGE_BATCH:
                await self._route_message_batch(connection, payload)
            elif kind is InboundEventKind.GROUP_PARTICIPANTS_CHANGE:
                await self._route_participants_change(connection, payload)
            elif kind is InboundEventKind.GROUP_METADATA_CHANGE:
                await self._route_metadata_changes(connection, payload)

    # ------------------------------------------------------------------
    # Per-kind routing
    # ------------------------------------------------------------------

    async def _route_message_batch(self, connection: Transport, payload: Any) -> None:
        if not isinstance(payload, Mapping):
            self._log_dropped(InboundEventKind.MESSAGE_BATCH, "payload is not an object")
            return

        if payload.get("type") != MESSAGE_BATCH_TYPE_NOTIFY:
            return

        for message in payload.get("messages") or ():
            await self._invoke(
                "handle_message",
                self._messages.handle_message,
                connection,
                message,
            )
            await self._invoke(
                "handle_event",
                self._events.handle_event,
                EVENT_MESSAGE,
                connection,
                message,
            )

    async def _route_participants_change(self, connection: Transport, update: Any) -> None:
        if not isinstance(update, Mapping):
            self._log_dropped(
                InboundEventKind.GROUP_PARTICIPANTS_CHANGE,
                "payload is not an object",
            )
            return

        participants = update.get("participants") or []
        first = participants[0] if participants else None

        await self._invoke(
            "handle_group_participants_update",
            self._messages.handle_group_participants_update,
            connection,
            update,
        )
        await self._invoke(
            "handle_event",
            self._events.handle_event,
            EVENT_GROUP_MEMBER_JOIN,
            connection,
            update.get("id"),
            first,
        )

    async def _route_metadata_changes(self, connection: Transport, updates: Any) -> None:
        if not isinstance(updates, list):
            self._log_dropped(
                InboundEventKind.GROUP_METADATA_CHANGE,
                "payload is not a list",
            )
            return

        for update in updates:
            await self._invoke(
                "handle_group_update",
                self._messages.handle_group_update,
                connection,
                update,
            )
            await self._invoke(
                "handle_event",
                self._events.handle_event,
                EVENT_GROUP_UPDATE,
                connection,
                update,
            )

    # ------------------------------------------------------------------
    # Error boundary
    # ------------------------------------------------------------------

    @staticmethod
    async def _invoke(
        label: str,
        fn: Callable[..., Awaitable[None]],
        *args: Any,
    ) -> bool:
        try:
            await fn(*args)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_exception("HANDLER_FAILED", exc, handler=label)
            return False
        return True

    @staticmethod
    def _log_dropped(kind: InboundEventKind, reason: str) -> None:
        log_event({
            "event_type": "INBOUND_EVENT_DROPPED",
            "kind": kind.value,
            "reason": reason,
        })
