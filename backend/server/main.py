"""
Process entry point.

Wires the connection core to its collaborators, runs the boot sequence,
and exits with the code the core requests.
"""

from __future__ import annotations

import asyncio
import sys

from dotenv import load_dotenv

from config import AppConfig
from observability.logger import set_log_level

from adapters.bridge.version import version_fetcher
from adapters.bridge.websocket_transport import bridge_transport_factory
from handlers.commands import CommandRegistry
from handlers.database import DatabaseProbe
from handlers.events import EventRegistry
from handlers.messages import LoggingMessageHandler
from server.app import LivenessServer
from server.boot import BootSequencer, ExitSignal
from session.connection_manager import ConnectionManager
from session.credentials import CredentialStore
from session.notifier import StartupNotifier
from session.router import EventRouter


def build_sequencer(config: AppConfig) -> BootSequencer:
    """Construct the object graph for one process lifetime."""
    base = config.base_dir

    exit_signal = ExitSignal()
    store = CredentialStore(base / config.session_dir)
    events = EventRegistry(base / config.events_dir)
    commands = CommandRegistry(base / config.commands_dir)

    manager = ConnectionManager(
        config=config,
        credential_store=store,
        router=EventRouter(
            message_handler=LoggingMessageHandler(),
            event_handler=events,
        ),
        notifier=StartupNotifier(config=config),
        transport_factory=bridge_transport_factory(config.bridge_url),
        fetch_version=version_fetcher(config.version_url),
        on_terminate=exit_signal,
    )

    return BootSequencer(
        config=config,
        credential_store=store,
        database=DatabaseProbe(config.database_url),
        command_handler=commands,
        event_handler=events,
        manager=manager,
        liveness=LivenessServer(config),
        exit_signal=exit_signal,
    )


async def _run(config: AppConfig) -> int:
    return await build_sequencer(config).run()


def main() -> None:
    load_dotenv()
    config = AppConfig.load_from_env()
    set_log_level(config.log_level)
    sys.exit(asyncio.run(_run(config)))


if __name__ == "__main__":
    main()
