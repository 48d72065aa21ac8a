"""
Command registry.

Command plugins live in the configured commands directory and declare the
names they answer to:

    COMMANDS = ("ping", "p")

    async def run(connection, message, args):
        ...

Parsing incoming text into (name, args) belongs to the message handler.
"""

from __future__ import annotations

from pathlib import Path
from types import ModuleType

from observability.logger import log_event

from handlers.base import CommandHandler
from handlers.plugin_loader import iter_plugin_files, load_plugin


class DuplicateCommand(ValueError):
    """Raised when two plugins claim the same command name."""


class CommandRegistry(CommandHandler):
    """Name -> command plugin module."""

    def __init__(self, commands_dir: Path) -> None:
        self._dir = Path(commands_dir)
        self._commands: dict[str, ModuleType] = {}

    def get(self, name: str) -> ModuleType | None:
        return self._commands.get(name.lower())

    def names(self) -> tuple[str, ...]:
        return tuple(sorted(self._commands))

    async def initialize_commands(self) -> None:
        """
        Import every command plugin and index it by name.

        Raises:
            PluginLoadError if a plugin fails to import.
            DuplicateCommand if two plugins share a name.
        """
        for path in iter_plugin_files(self._dir):
            module = load_plugin(path, "relaybot_commands")
            names = getattr(module, "COMMANDS", ())
            if isinstance(names, str):
                names = (names,)
            if not names or not callable(getattr(module, "run", None)):
                log_event({
                    "event_type": "COMMAND_PLUGIN_SKIPPED",
                    "path": str(path),
                    "reason": "missing COMMANDS or run",
                })
                continue

            for name in names:
                key = str(name).lower()
                if key in self._commands:
                    raise DuplicateCommand(f"command {key!r} defined twice ({path})")
                self._commands[key] = module

        log_event({
            "event_type": "COMMANDS_INITIALIZED",
            "count": len(self._commands),
        })
