"""
Event registry.

Event plugins live in the configured events directory. A plugin module
declares which event it handles and an async handler:

    EVENT = "groupMemberJoin"

    async def handle(connection, *args):
        ...

Several plugins may handle the same event; they run in file-name order.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Awaitable, Callable

from observability.logger import log_event

from handlers.base import EventHandler
from handlers.plugin_loader import iter_plugin_files, load_plugin
from session.transport import Transport


EventFn = Callable[..., Awaitable[None]]


class EventRegistry(EventHandler):
    """Maps generic event names to plugin handlers."""

    def __init__(self, events_dir: Path) -> None:
        self._dir = Path(events_dir)
        self._handlers: dict[str, list[EventFn]] = {}

    def register(self, kind: str, fn: EventFn) -> None:
        self._handlers.setdefault(kind, []).append(fn)

    def handlers_for(self, kind: str) -> tuple[EventFn, ...]:
        return tuple(self._handlers.get(kind, ()))

    async def load_events(self) -> None:
        """
        Import every plugin in the events directory.

        Raises:
            PluginLoadError if a plugin fails to import (fatal at boot).
        """
        loaded = 0
        for path in iter_plugin_files(self._dir):
            module = load_plugin(path, "relaybot_events")
            kind = getattr(module, "EVENT", None)
            fn = getattr(module, "handle", None)
            if not isinstance(kind, str) or not callable(fn):
                log_event({
                    "event_type": "EVENT_PLUGIN_SKIPPED",
                    "path": str(path),
                    "reason": "missing EVENT or handle",
                })
                continue
            self.register(kind, fn)
            loaded += 1

        log_event({
            "event_type": "EVENTS_LOADED",
            "count": loaded,
            "kinds": sorted(self._handlers),
        })

    async def handle_event(self, kind: str, connection: Transport, *args: Any) -> None:
        for fn in self._handlers.get(kind, ()):
            await fn(connection, *args)
