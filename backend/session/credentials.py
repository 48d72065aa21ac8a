"""
Session credential storage.

Responsibilities:
- Read the persisted credential set from the session directory
- Persist incremental credential updates issued by the transport
- Replace the directory contents from an environment-supplied,
  base64-encoded JSON blob (best-effort bootstrap)

Non-responsibilities:
- No interpretation of credential contents (keys, identity, metadata are
  opaque to this module)
- No pairing or authentication
"""

from __future__ import annotations

import base64
import binascii
import json
import os
import shutil
from pathlib import Path
from typing import Any, Mapping

from constants import CREDENTIALS_FILENAME, CREDENTIALS_JSON_INDENT
from observability.logger import log_event, log_exception


class CredentialStore:
    """
    Owns SessionCredentials on disk.

    The credential set lives in `<session_dir>/creds.json`. Other files in
    the directory (signal keys written by the protocol layer) are left alone
    except by bootstrap, which clears the whole directory.
    """

    def __init__(self, session_dir: Path) -> None:
        self._dir = Path(session_dir)
        self._creds: dict[str, Any] | None = None

    @property
    def session_dir(self) -> Path:
        return self._dir

    @property
    def creds_path(self) -> Path:
        return self._dir / CREDENTIALS_FILENAME

    def ensure_dir(self) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def load(self) -> dict[str, Any] | None:
        """
        Return the stored credentials, or None when absent.

        An unreadable or non-object file is logged and treated as absent,
        which sends the transport into pairing.
        """
        path = self.creds_path
        if not path.is_file():
            self._creds = None
            return None

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            log_exception("CREDENTIALS_UNREADABLE", exc, path=str(path))
            self._creds = None
            return None

        if not isinstance(data, dict):
            log_event({
                "event_type": "CREDENTIALS_UNREADABLE",
                "level": "error",
                "path": str(path),
                "message": "credentials file is not a JSON object",
            })
            self._creds = None
            return None

        self._creds = data
        return dict(data)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def persist(self, update: Mapping[str, Any]) -> None:
        """
        Merge a credential update into the stored set and write it.

        Called verbatim with the payload of the transport's credential
        update notification. Top-level keys in `update` replace stored keys.
        """
        if self._creds is None:
            self.load()

        merged: dict[str, Any] = dict(self._creds or {})
        merged.update(update)

        self.ensure_dir()
        self._write_json(self.creds_path, merged)
        self._creds = merged

        log_event({
            "event_type": "CREDENTIALS_PERSISTED",
            "keys": sorted(update.keys()),
        })

    def bootstrap_from_encoded(self, blob: str) -> bool:
        """
        Replace on-disk credentials with a base64-encoded JSON document.

        Returns:
            True if the directory now holds exactly the decoded credentials.
            False if the blob could not be decoded or parsed; the existing
            directory contents are untouched in that case.

        Never raises for malformed input.
        """
        try:
            raw = base64.b64decode(blob.strip(), validate=True)
            data = json.loads(raw.decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
            log_exception("SESSION_DATA_INVALID", exc)
            return False

        if not isinstance(data, dict):
            log_event({
                "event_type": "SESSION_DATA_INVALID",
                "level": "error",
                "message": "decoded session data is not a JSON object",
            })
            return False

        try:
            self._clear_dir()
            self._write_json(self.creds_path, data)
        except OSError as exc:
            log_exception("SESSION_DATA_WRITE_FAILED", exc, path=str(self._dir))
            return False

        self._creds = data
        log_event({
            "event_type": "SESSION_DATA_BOOTSTRAPPED",
            "path": str(self.creds_path),
        })
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _clear_dir(self) -> None:
        if self._dir.exists():
            for child in self._dir.iterdir():
                if child.is_dir() and not child.is_symlink():
                    shutil.rmtree(child)
                else:
                    child.unlink()
        self.ensure_dir()

    @staticmethod
    def _write_json(path: Path, data: Mapping[str, Any]) -> None:
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(
            json.dumps(data, indent=CREDENTIALS_JSON_INDENT, ensure_ascii=False),
            encoding="utf-8",
        )
        os.replace(tmp, path)
