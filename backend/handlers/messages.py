"""
Default message handler.

Logs each routed item. Deployments replace this with their own
MessageHandler to add per-message business rules.
"""

from __future__ import annotations

from typing import Any, Mapping

from observability.logger import log_event

from handlers.base import MessageHandler
from session.transport import Transport


def _message_id(message: Mapping[str, Any]) -> str | None:
    key = message.get("key")
    if isinstance(key, Mapping):
        return key.get("id")
    return None


def _chat_id(message: Mapping[str, Any]) -> str | None:
    key = message.get("key")
    if isinstance(key, Mapping):
        return key.get("remoteJid")
    return None


class LoggingMessageHandler(MessageHandler):
    """Observability-only MessageHandler."""

    async def handle_message(self, connection: Transport, message: Mapping[str, Any]) -> None:
        log_event({
            "event_type": "MESSAGE_RECEIVED",
            "message_id": _message_id(message),
            "chat": _chat_id(message),
        })

    async def handle_group_participants_update(
        self,
        connection: Transport,
        update: Mapping[str, Any],
    ) -> None:
        log_event({
            "event_type": "GROUP_PARTICIPANTS_UPDATED",
            "group": update.get("id"),
            "action": update.get("action"),
            "participants": len(update.get("participants") or ()),
        })

    async def handle_group_update(self, connection: Transport, update: Mapping[str, Any]) -> None:
        log_event({
            "event_type": "GROUP_UPDATED",
            "group": update.get("id"),
            "fields": sorted(k for k in update if k != "id"),
        })
