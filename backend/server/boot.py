"""
Boot sequence and process exit.

Responsibilities:
- Run the one-time startup steps in a fixed order, fail-fast
- Hold the single process exit request (ExitSignal)
- Install the fallback handlers for errors escaping every other boundary
- Tear down the connection and liveness server before the process exits

Order:
    banner -> directories -> database -> credential bootstrap ->
    commands -> events -> connect -> liveness server -> fallback handlers

Any exception raised by a step before the liveness server is serving is
logged as BOOT_FAILED and requests exit code 1. There is no partial mode.
"""

from __future__ import annotations

import asyncio
import sys
from types import TracebackType
from typing import Any, Awaitable, Callable, Protocol

from config import AppConfig
from constants import EXIT_CODE_FATAL, SESSION_CLOSED_SIGNATURE
from observability.logger import log_event, log_exception

from handlers.base import CommandHandler, Database, EventHandler
from session.connection_manager import ConnectionManager
from session.credentials import CredentialStore


class Liveness(Protocol):
    async def start(self) -> None: ...
    async def stop(self) -> None: ...


class ExitSignal:
    """
    One-shot process exit request.

    The first call records the exit code and wakes wait(); later calls are
    counted but ignored.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.code: int | None = None
        self.calls = 0

    def __call__(self, code: int) -> None:
        self.calls += 1
        if self.code is not None:
            return
        self.code = code
        self._event.set()
        log_event({"event_type": "PROCESS_EXIT_REQUESTED", "exit_code": code})

    @property
    def requested(self) -> bool:
        return self.code is not None

    async def wait(self) -> int:
        await self._event.wait()
        if self.code is None:
            raise RuntimeError("exit signalled without a code")
        return self.code


def display_banner(config: AppConfig) -> None:
    """Print the startup banner."""
    title = f"  {config.bot_name}  v{config.bot_version}  "
    rule = "=" * len(title)
    print(f"{rule}\n{title}\n{rule}", flush=True)


class BootSequencer:
    """
    Orchestrates startup for one process lifetime.

    run() returns the exit code the process should terminate with; it
    only returns once an exit has been requested.
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        credential_store: CredentialStore,
        database: Database,
        command_handler: CommandHandler,
        event_handler: EventHandler,
        manager: ConnectionManager,
        liveness: Liveness,
        exit_signal: ExitSignal,
        banner: Callable[[AppConfig], None] = display_banner,
    ) -> None:
        self._config = config
        self._store = credential_store
        self._database = database
        self._commands = command_handler
        self._events = event_handler
        self._manager = manager
        self._liveness = liveness
        self._exit = exit_signal
        self._banner = banner

        self.completed_steps: list[str] = []

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _steps(self) -> list[tuple[str, Callable[[], Awaitable[Any]]]]:
        return [
            ("banner", self._show_banner),
            ("directories", self._ensure_directories),
            ("database", self._database.connect_to_database),
            ("credentials", self._bootstrap_credentials),
            ("commands", self._commands.initialize_commands),
            ("events", self._events.load_events),
            ("connect", self._manager.connect),
            ("liveness", self._liveness.start),
        ]

    async def _show_banner(self) -> None:
        self._banner(self._config)

    async def _ensure_directories(self) -> None:
        for directory in self._config.required_directories():
            directory.mkdir(parents=True, exist_ok=True)

    async def _bootstrap_credentials(self) -> bool:
        blob = self._config.session_data
        if not blob:
            return False
        return self._store.bootstrap_from_encoded(blob)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def boot(self) -> bool:
        """
        Run every step in order. Returns False (and requests exit 1) on
        the first failing step.
        """
        for name, step in self._steps():
            try:
                await step()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_exception("BOOT_FAILED", exc, step=name)
                self._exit(EXIT_CODE_FATAL)
                return False
            self.completed_steps.append(name)
            log_event({"event_type": "BOOT_STEP_COMPLETED", "step": name})

        self.install_fallback_handlers()
        log_event({"event_type": "BOOT_COMPLETED", **self._manager.log_context()})
        return True

    async def run(self) -> int:
        """Boot, then wait for an exit request and tear down."""
        await self.boot()
        code = await self._exit.wait()
        await self._teardown()
        return code

    async def _teardown(self) -> None:
        try:
            await self._manager.shutdown()
        finally:
            await self._liveness.stop()

    # ------------------------------------------------------------------
    # Fallback handlers
    # ------------------------------------------------------------------

    def install_fallback_handlers(self) -> None:
        asyncio.get_running_loop().set_exception_handler(self.handle_loop_exception)
        sys.excepthook = self.handle_uncaught_exception

    def handle_loop_exception(
        self,
        loop: asyncio.AbstractEventLoop,
        context: dict[str, Any],
    ) -> None:
        """
        Unhandled errors from tasks and callbacks.

        Logged and survived, unless the error carries the session-closed
        signature, in which case exit 1 is requested.
        """
        exc = context.get("exception")
        message = str(exc) if exc is not None else str(context.get("message", ""))
        log_event({
            "event_type": "UNHANDLED_ASYNC_ERROR",
            "level": "error",
            "exception": type(exc).__name__ if exc is not None else None,
            "message": message,
        })
        if SESSION_CLOSED_SIGNATURE in message:
            self._exit(EXIT_CODE_FATAL)

    def handle_uncaught_exception(
        self,
        exc_type: type[BaseException],
        exc: BaseException,
        tb: TracebackType | None,
    ) -> None:
        """
        Log an uncaught synchronous error, then defer to the default hook.

        This only runs once the event loop has unwound, so the interpreter
        itself exits non-zero.
        """
        log_exception("UNCAUGHT_EXCEPTION", exc)
        sys.__excepthook__(exc_type, exc, tb)
