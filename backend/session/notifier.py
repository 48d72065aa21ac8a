"""
Startup notification.

Formats the "bot is online" status block and sends it to one owner.
Send failures are logged and never raised.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from config import AppConfig
from constants import STARTUP_PREVIEW_BODY, STARTUP_THUMBNAIL_URL
from observability.logger import log_event, log_exception

from session.transport import Transport


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StartupNotifier:
    """Sends the fixed-structure status message to owner identities."""

    def __init__(
        self,
        *,
        config: AppConfig,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._config = config
        self._clock = clock

    def _zone(self) -> ZoneInfo | timezone:
        try:
            return ZoneInfo(self._config.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            log_event({
                "event_type": "TIMEZONE_UNKNOWN",
                "timezone": self._config.timezone,
            })
            return timezone.utc

    def format_status(self, now: datetime | None = None) -> str:
        """Render the status block in the configured timezone."""
        cfg = self._config
        local = (now or self._clock()).astimezone(self._zone())

        time_text = local.strftime("%I:%M:%S %p")
        date_text = f"{local:%A}, {local:%B} {local.day}, {local.year}"
        mode = "Public" if cfg.public_mode else "Private"

        return "\n".join([
            f"╭─「 *{cfg.bot_name}* 」",
            "├ Status: Online ✅",
            f"├ Version: {cfg.bot_version}",
            f"├ Time: {time_text}",
            f"├ Date: {date_text}",
            f"├ Mode: {mode}",
            f"├ Owner: {cfg.owner_name}",
            f"├ Prefix: {cfg.prefix}",
            "╰────────────────",
        ])

    def build_message(self, now: datetime | None = None) -> dict[str, Any]:
        """Status text plus the link-preview metadata block."""
        return {
            "text": self.format_status(now),
            "contextInfo": {
                "externalAdReply": {
                    "title": self._config.bot_name,
                    "body": STARTUP_PREVIEW_BODY,
                    "thumbnailUrl": STARTUP_THUMBNAIL_URL,
                    "sourceUrl": self._config.home_page,
                    "mediaType": 1,
                    "renderLargerThumbnail": True,
                },
            },
        }

    async def notify(self, connection: Transport, jid: str) -> bool:
        """
        Send the status message to `jid`.

        Returns True on success, False if the send raised.
        """
        try:
            await connection.send_message(jid, self.build_message())
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_exception("STARTUP_MESSAGE_FAILED", exc, jid=jid)
            return False

        log_event({"event_type": "STARTUP_MESSAGE_SENT", "jid": jid})
        return True
