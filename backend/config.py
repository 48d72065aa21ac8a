"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No connection logic
- No behavioral constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from constants import DEFAULT_HTTP_PORT, USER_JID_SUFFIX


def _parse_bool(raw: str | None, default: bool) -> bool:
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def parse_owner_numbers(raw: str | None) -> tuple[str, ...]:
    """
    Split a comma separated owner list into recipient addresses.

    Bare phone numbers get the user address suffix; entries that already
    carry a domain are kept as-is. Blank entries are dropped.
    """
    if not raw:
        return ()

    owners: list[str] = []
    for part in raw.split(","):
        entry = part.strip()
        if not entry:
            continue
        if "@" not in entry:
            entry = entry.lstrip("+") + USER_JID_SUFFIX
        owners.append(entry)
    return tuple(owners)


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup and passed downward to the boot
    sequencer, connection manager and notifier.
    """

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Bot identity
    # ------------------------------------------------------------------

    bot_name: str = "RelayBot"
    bot_version: str = "1.0.0"
    owner_name: str = "Owner"
    owner_numbers: tuple[str, ...] = ()
    prefix: str = "."
    public_mode: bool = False
    timezone: str = "UTC"
    home_page: str = ""

    # ------------------------------------------------------------------
    # Filesystem
    # ------------------------------------------------------------------

    base_dir: Path = Path(".")
    session_dir: Path = Path("auth_info_baileys")
    events_dir: Path = Path("src/events")
    commands_dir: Path = Path("src/commands")

    # ------------------------------------------------------------------
    # Session bootstrap
    # ------------------------------------------------------------------

    session_data: str | None = None

    # ------------------------------------------------------------------
    # External services
    # ------------------------------------------------------------------

    bridge_url: str = "ws://127.0.0.1:8765"
    version_url: str | None = None
    database_url: str | None = None

    # ------------------------------------------------------------------
    # Liveness server
    # ------------------------------------------------------------------

    port: int = DEFAULT_HTTP_PORT

    # ------------------------------------------------------------------
    # Derived paths
    # ------------------------------------------------------------------

    def required_directories(self) -> tuple[Path, ...]:
        """Directories that must exist before the connection starts."""
        base = self.base_dir
        return (
            base / self.session_dir,
            base / "temp",
            base / "assets",
            base / "logs",
            base / self.events_dir,
            base / self.commands_dir,
        )

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if PORT is not an integer.
        """
        return AppConfig(
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            bot_name=os.environ.get("BOT_NAME", "RelayBot"),
            bot_version=os.environ.get("BOT_VERSION", "1.0.0"),
            owner_name=os.environ.get("OWNER_NAME", "Owner"),
            owner_numbers=parse_owner_numbers(os.environ.get("OWNER_NUMBERS")),
            prefix=os.environ.get("PREFIX", "."),
            public_mode=_parse_bool(os.environ.get("PUBLIC_MODE"), False),
            timezone=os.environ.get("TIMEZONE", "UTC"),
            home_page=os.environ.get("HOME_PAGE", ""),

            base_dir=Path(os.environ.get("BASE_DIR", os.getcwd())),
            session_dir=Path(os.environ.get("SESSION_DIR", "auth_info_baileys")),
            events_dir=Path(os.environ.get("EVENTS_DIR", "src/events")),
            commands_dir=Path(os.environ.get("COMMANDS_DIR", "src/commands")),

            session_data=os.environ.get("SESSION_DATA") or None,

            bridge_url=os.environ.get("BRIDGE_URL", "ws://127.0.0.1:8765"),
            version_url=os.environ.get("VERSION_URL") or None,
            database_url=os.environ.get("DATABASE_URL") or None,

            port=int(os.environ.get("PORT", str(DEFAULT_HTTP_PORT))),
        )
