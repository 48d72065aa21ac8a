"""
Disconnect classification.

Maps the status code carried by a transport close event onto a
DisconnectReason. Only LOGGED_OUT is terminal; every other cause is
treated as transient and handed to the retry policy.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping


class DisconnectReason(Enum):
    """
    Known close causes reported by the chat transport.

    Values are the numeric status codes used on the wire.
    UNKNOWN covers a missing or unrecognized code.
    """

    CONNECTION_CLOSED = 428
    CONNECTION_LOST = 408
    CONNECTION_REPLACED = 440
    LOGGED_OUT = 401
    BAD_SESSION = 500
    RESTART_REQUIRED = 515
    MULTIDEVICE_MISMATCH = 411
    FORBIDDEN = 403
    UNAVAILABLE_SERVICE = 503
    UNKNOWN = -1

    @property
    def is_terminal(self) -> bool:
        """A terminal reason must never be retried."""
        return self is DisconnectReason.LOGGED_OUT


def classify_disconnect(status_code: int | None) -> DisconnectReason:
    """
    Classify a close status code.

    Notes:
    - 408 is shared by "connection lost" and "timed out"; both map to
      CONNECTION_LOST since they are handled identically.
    """
    if status_code is None:
        return DisconnectReason.UNKNOWN
    try:
        return DisconnectReason(status_code)
    except ValueError:
        return DisconnectReason.UNKNOWN


def extract_status_code(last_disconnect: Mapping[str, Any] | None) -> int | None:
    """
    Pull the status code out of a raw `lastDisconnect` payload.

    Accepts both the nested `{"error": {"output": {"statusCode": n}}}`
    shape and a flat `{"statusCode": n}`. Anything else yields None.
    """
    if not last_disconnect:
        return None

    code: Any = last_disconnect.get("statusCode")
    if code is None:
        error = last_disconnect.get("error")
        if isinstance(error, Mapping):
            output = error.get("output")
            if isinstance(output, Mapping):
                code = output.get("statusCode")
            else:
                code = error.get("statusCode")

    if isinstance(code, bool) or not isinstance(code, int):
        return None
    return code
