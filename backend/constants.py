"""
BEHAVIOR-AS-CONSTANTS
---------------------
Single source of truth for the behavioral constants of the bot process.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Deployment-specific values (ports, paths, owners) live in config.py.
"""

from __future__ import annotations

from typing import Final, Tuple

# =============================================================================
# Reconnection Policy
# =============================================================================

MAX_CONNECT_ATTEMPTS: Final[int] = 5
RECONNECT_DELAY_MS: Final[int] = 5_000

# =============================================================================
# Transport Operational Parameters
# =============================================================================

DEFAULT_QUERY_TIMEOUT_MS: Final[int] = 60_000
CONNECT_TIMEOUT_MS: Final[int] = 60_000
RETRY_REQUEST_DELAY_MS: Final[int] = 5_000
MAX_REQUEST_RETRIES: Final[int] = 5
PAIRING_QR_TIMEOUT_MS: Final[int] = 40_000
MARK_ONLINE_ON_CONNECT: Final[bool] = True
HIGH_QUALITY_LINK_PREVIEW: Final[bool] = True
BROWSER_DESCRIPTOR: Final[Tuple[str, str, str]] = ("Ubuntu", "Chrome", "22.04.4")

# Used when the version endpoint is unreachable
DEFAULT_PROTOCOL_VERSION: Final[Tuple[int, ...]] = (2, 3000, 1015901307)
VERSION_FETCH_TIMEOUT_S: Final[float] = 10.0

# Bridge frames larger than this are rejected by the socket layer
BRIDGE_MAX_FRAME_BYTES: Final[int] = 2**22

# =============================================================================
# Credentials
# =============================================================================

CREDENTIALS_FILENAME: Final[str] = "creds.json"
CREDENTIALS_JSON_INDENT: Final[int] = 2

# =============================================================================
# Process Lifecycle
# =============================================================================

EXIT_CODE_FATAL: Final[int] = 1

# Unhandled async errors whose message contains this are escalated to exit
SESSION_CLOSED_SIGNATURE: Final[str] = "Session closed"

# =============================================================================
# Liveness Server
# =============================================================================

DEFAULT_HTTP_PORT: Final[int] = 3000
HTTP_BIND_HOST: Final[str] = "0.0.0.0"

# =============================================================================
# Addressing
# =============================================================================

USER_JID_SUFFIX: Final[str] = "@s.whatsapp.net"

# =============================================================================
# Startup Message
# =============================================================================

STARTUP_THUMBNAIL_URL: Final[str] = (
    "https://raw.githubusercontent.com/WhiskeySockets/Baileys/master/Icon.png"
)
STARTUP_PREVIEW_BODY: Final[str] = "Bot is now online!"
