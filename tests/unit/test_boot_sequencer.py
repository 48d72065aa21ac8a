# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import base64
import json
import sys
from pathlib import Path
from typing import Any

import pytest

import server.boot as boot_mod
from config import AppConfig
from handlers.messages import LoggingMessageHandler
from server.boot import BootSequencer, ExitSignal
from session.connection_manager import ConnectionManager
from session.connection_status import ConnectionState
from session.credentials import CredentialStore
from session.notifier import StartupNotifier
from session.router import EventRouter
from session.transport import ProtocolVersion, Transport, TransportEvents, TransportOptions


@pytest.fixture(autouse=True)
def _restore_excepthook(monkeypatch: pytest.MonkeyPatch) -> None:
    # boot() installs a process-wide excepthook
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)


class Recorder:
    def __init__(self) -> None:
        self.order: list[str] = []


class FakeDatabase:
    def __init__(self, rec: Recorder, fail: bool = False) -> None:
        self._rec = rec
        self._fail = fail

    async def connect_to_database(self) -> None:
        self._rec.order.append("database")
        if self._fail:
            raise ConnectionError("database unreachable")


class FakeCommands:
    def __init__(self, rec: Recorder) -> None:
        self._rec = rec

    async def initialize_commands(self) -> None:
        self._rec.order.append("commands")


class FakeEvents:
    def __init__(self, rec: Recorder) -> None:
        self._rec = rec

    async def load_events(self) -> None:
        self._rec.order.append("events")

    async def handle_event(self, kind: str, connection: Any, *args: Any) -> None:
        pass


class FakeManager:
    def __init__(self, rec: Recorder) -> None:
        self._rec = rec
        self.shut_down = False

    async def connect(self) -> None:
        self._rec.order.append("connect")

    async def shutdown(self) -> None:
        self.shut_down = True

    def log_context(self) -> dict[str, Any]:
        return {}


class FakeLiveness:
    def __init__(self, rec: Recorder) -> None:
        self._rec = rec
        self.stopped = False

    async def start(self) -> None:
        self._rec.order.append("liveness")

    async def stop(self) -> None:
        self.stopped = True


def make_sequencer(
    tmp_path: Path,
    *,
    session_data: str | None = None,
    fail_database: bool = False,
) -> tuple[BootSequencer, Recorder, ExitSignal, CredentialStore]:
    rec = Recorder()
    config = AppConfig(base_dir=tmp_path, session_data=session_data)
    store = CredentialStore(tmp_path / config.session_dir)
    exit_signal = ExitSignal()
    seq = BootSequencer(
        config=config,
        credential_store=store,
        database=FakeDatabase(rec, fail=fail_database),  # type: ignore[arg-type]
        command_handler=FakeCommands(rec),  # type: ignore[arg-type]
        event_handler=FakeEvents(rec),  # type: ignore[arg-type]
        manager=FakeManager(rec),  # type: ignore[arg-type]
        liveness=FakeLiveness(rec),
        exit_signal=exit_signal,
        banner=lambda cfg: rec.order.append("banner"),
    )
    return seq, rec, exit_signal, store


@pytest.mark.asyncio
async def test_boot_runs_steps_in_fixed_order(tmp_path: Path):
    seq, rec, exit_signal, _ = make_sequencer(tmp_path)

    assert await seq.boot() is True

    assert rec.order == ["banner", "database", "commands", "events", "connect", "liveness"]
    assert seq.completed_steps == [
        "banner", "directories", "database", "credentials",
        "commands", "events", "connect", "liveness",
    ]
    assert not exit_signal.requested
    for name in ("auth_info_baileys", "temp", "assets", "logs", "src/events", "src/commands"):
        assert (tmp_path / name).is_dir()


@pytest.mark.asyncio
async def test_boot_failure_stops_sequence_and_requests_exit(tmp_path: Path):
    seq, rec, exit_signal, _ = make_sequencer(tmp_path, fail_database=True)

    assert await seq.boot() is False

    assert rec.order == ["banner", "database"]
    assert "connect" not in seq.completed_steps
    assert exit_signal.code == 1


@pytest.mark.asyncio
async def test_boot_bootstraps_credentials_from_session_data(tmp_path: Path):
    blob = base64.b64encode(json.dumps({"me": {"id": "x"}}).encode()).decode()
    seq, _, _, store = make_sequencer(tmp_path, session_data=blob)

    await seq.boot()

    assert store.load() == {"me": {"id": "x"}}


@pytest.mark.asyncio
async def test_malformed_session_data_is_not_fatal(tmp_path: Path):
    seq, rec, exit_signal, store = make_sequencer(tmp_path, session_data="%%%")

    assert await seq.boot() is True

    assert "connect" in rec.order
    assert store.load() is None
    assert not exit_signal.requested


@pytest.mark.asyncio
async def test_run_returns_exit_code_and_tears_down(tmp_path: Path):
    seq, _, exit_signal, _ = make_sequencer(tmp_path)

    task = asyncio.create_task(seq.run())
    await asyncio.sleep(0)
    exit_signal(1)
    code = await task

    assert code == 1
    assert seq._manager.shut_down  # pylint: disable=protected-access
    assert seq._liveness.stopped  # pylint: disable=protected-access


@pytest.mark.asyncio
async def test_loop_exception_handler_escalates_only_session_closed(tmp_path: Path):
    seq, _, exit_signal, _ = make_sequencer(tmp_path)
    loop = asyncio.get_running_loop()

    seq.handle_loop_exception(loop, {"message": "x", "exception": ValueError("benign")})
    assert not exit_signal.requested

    seq.handle_loop_exception(loop, {"message": "x", "exception": RuntimeError("Session closed")})
    assert exit_signal.code == 1


@pytest.mark.asyncio
async def test_uncaught_exception_is_logged_and_passed_to_default_hook(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
):
    seq, _, exit_signal, _ = make_sequencer(tmp_path)
    delegated: list[tuple[Any, ...]] = []
    logged: list[str] = []
    monkeypatch.setattr(sys, "__excepthook__", lambda *a: delegated.append(a))
    monkeypatch.setattr(boot_mod, "log_exception", lambda event_type, exc, **f: logged.append(event_type))
    exc = KeyError("boom")

    seq.handle_uncaught_exception(KeyError, exc, None)

    assert logged == ["UNCAUGHT_EXCEPTION"]
    assert delegated == [(KeyError, exc, None)]
    assert not exit_signal.requested


@pytest.mark.asyncio
async def test_exit_signal_keeps_first_code():
    exit_signal = ExitSignal()

    exit_signal(1)
    exit_signal(0)

    assert exit_signal.calls == 2
    assert await exit_signal.wait() == 1


# ---------------------------------------------------------------------
# End to end: real manager, fake transport
# ---------------------------------------------------------------------

class SilentTransport(Transport):
    """Starts fine and never reports open or close (awaiting pairing)."""

    def __init__(self, options: TransportOptions) -> None:
        self.ev = TransportEvents()
        self.options = options

    async def start(self) -> None:
        pass

    async def send_message(self, jid: str, content: Any) -> None:
        pass

    async def close(self) -> None:
        pass


@pytest.mark.asyncio
async def test_fresh_boot_without_credentials_reaches_connecting(tmp_path: Path):
    rec = Recorder()
    config = AppConfig(base_dir=tmp_path)
    store = CredentialStore(tmp_path / config.session_dir)
    exit_signal = ExitSignal()
    built: list[SilentTransport] = []

    def factory(options: TransportOptions) -> SilentTransport:
        built.append(SilentTransport(options))
        return built[-1]

    async def fetch_version() -> ProtocolVersion:
        return ProtocolVersion(version=(2, 3000, 1), is_latest=False)

    manager = ConnectionManager(
        config=config,
        credential_store=store,
        router=EventRouter(
            message_handler=LoggingMessageHandler(),
            event_handler=FakeEvents(rec),  # type: ignore[arg-type]
        ),
        notifier=StartupNotifier(config=config),
        transport_factory=factory,
        fetch_version=fetch_version,
        on_terminate=exit_signal,
    )
    seq = BootSequencer(
        config=config,
        credential_store=store,
        database=FakeDatabase(rec),  # type: ignore[arg-type]
        command_handler=FakeCommands(rec),  # type: ignore[arg-type]
        event_handler=FakeEvents(rec),  # type: ignore[arg-type]
        manager=manager,
        liveness=FakeLiveness(rec),
        exit_signal=exit_signal,
        banner=lambda cfg: None,
    )

    assert await seq.boot() is True

    assert manager.state is ConnectionState.CONNECTING
    assert len(built) == 1
    assert built[0].options.credentials is None
    assert not manager.reconnect_pending
    assert not exit_signal.requested
