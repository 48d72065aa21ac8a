# pylint: disable=missing-module-docstring,missing-function-docstring

import base64
import json
from pathlib import Path

from session.credentials import CredentialStore


def encode(obj: object) -> str:
    return base64.b64encode(json.dumps(obj).encode("utf-8")).decode("ascii")


def make_store(tmp_path: Path) -> CredentialStore:
    store = CredentialStore(tmp_path / "auth_info")
    store.ensure_dir()
    return store


def test_load_absent_returns_none(tmp_path: Path):
    assert make_store(tmp_path).load() is None


def test_load_unreadable_returns_none(tmp_path: Path):
    store = make_store(tmp_path)
    store.creds_path.write_text("{not json", encoding="utf-8")

    assert store.load() is None


def test_persist_merges_updates(tmp_path: Path):
    store = make_store(tmp_path)

    store.persist({"me": {"id": "1@s.whatsapp.net"}, "registered": False})
    store.persist({"registered": True})

    assert store.load() == {"me": {"id": "1@s.whatsapp.net"}, "registered": True}
    assert not (store.session_dir / "creds.json.tmp").exists()


def test_bootstrap_valid_blob_clears_previous_contents(tmp_path: Path):
    store = make_store(tmp_path)
    store.persist({"old": True})
    (store.session_dir / "pre-key-1.json").write_text("{}", encoding="utf-8")
    (store.session_dir / "nested").mkdir()

    assert store.bootstrap_from_encoded(encode({"new": True})) is True

    assert sorted(p.name for p in store.session_dir.iterdir()) == ["creds.json"]
    assert json.loads(store.creds_path.read_text(encoding="utf-8")) == {"new": True}
    assert store.load() == {"new": True}


def test_bootstrap_malformed_base64_leaves_disk_untouched(tmp_path: Path):
    store = make_store(tmp_path)
    store.persist({"old": True})
    before = store.creds_path.read_text(encoding="utf-8")

    assert store.bootstrap_from_encoded("***not base64***") is False

    assert store.creds_path.read_text(encoding="utf-8") == before


def test_bootstrap_non_json_payload_leaves_disk_untouched(tmp_path: Path):
    store = make_store(tmp_path)
    store.persist({"old": True})
    blob = base64.b64encode(b"definitely not json").decode("ascii")

    assert store.bootstrap_from_encoded(blob) is False
    assert store.load() == {"old": True}


def test_bootstrap_rejects_non_object_json(tmp_path: Path):
    store = make_store(tmp_path)

    assert store.bootstrap_from_encoded(encode([1, 2, 3])) is False
    assert store.load() is None


def test_bootstrap_creates_missing_directory(tmp_path: Path):
    store = CredentialStore(tmp_path / "missing")

    assert store.bootstrap_from_encoded(encode({"k": 1})) is True
    assert store.load() == {"k": 1}
