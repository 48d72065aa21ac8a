"""
Collaborator contracts consumed by the connection core.

This module defines the *interface only*. Per-message business rules,
command parsing and chat persistence live in the implementations.

Key invariants:
- The core never retries a collaborator call; a raised exception is the
  collaborator's way of signalling failure and is logged by the caller.
- `connection` is the live Transport for the current session.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping

from session.transport import Transport


class MessageHandler(ABC):
    """Per-event business logic for messages and group changes."""

    @abstractmethod
    async def handle_message(self, connection: Transport, message: Mapping[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    async def handle_group_participants_update(
        self,
        connection: Transport,
        update: Mapping[str, Any],
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    async def handle_group_update(self, connection: Transport, update: Mapping[str, Any]) -> None:
        raise NotImplementedError


class EventHandler(ABC):
    """Generic named-event dispatch (plugins keyed by event kind)."""

    @abstractmethod
    async def load_events(self) -> None:
        """Discover and register event handlers. Called once at boot."""
        raise NotImplementedError

    @abstractmethod
    async def handle_event(self, kind: str, connection: Transport, *args: Any) -> None:
        raise NotImplementedError


class CommandHandler(ABC):
    """Command registry. Parsing is the implementation's concern."""

    @abstractmethod
    async def initialize_commands(self) -> None:
        raise NotImplementedError


class Database(ABC):
    """External database connectivity."""

    @abstractmethod
    async def connect_to_database(self) -> None:
        """Establish connectivity. Raises on failure (fatal at boot)."""
        raise NotImplementedError
