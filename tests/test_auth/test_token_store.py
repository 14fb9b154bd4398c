"""Tests for the per-profile credential store."""

from __future__ import annotations

import os
import stat
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from drchrono_sdk.credential_store import CredentialStore
from drchrono_sdk.models import Credential


@pytest.fixture()
def store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> CredentialStore:
    """Create a CredentialStore that writes to a temp directory."""
    monkeypatch.setattr("drchrono_sdk.credential_store.get_data_dir", lambda: tmp_path)
    return CredentialStore("test-profile")


class TestCredentialStore:
    def test_path(self, store: CredentialStore, tmp_path: Path) -> None:
        assert store.path == tmp_path / "credentials" / "test-profile.json"

    def test_load_returns_none_when_no_file(self, store: CredentialStore) -> None:
        assert store.load() is None
        assert store.is_valid() is False

    def test_save_and_load(self, store: CredentialStore) -> None:
        expires = datetime(2031, 6, 1, 12, 0, tzinfo=timezone.utc)
        store.save(Credential(oauth_token="tok", refresh_token="ref", expires_at=expires))
        loaded = store.load()
        assert loaded is not None
        assert loaded.oauth_token == "tok"
        assert loaded.refresh_token == "ref"
        assert loaded.expires_at == expires
        assert store.is_valid() is True

    def test_file_permissions(self, store: CredentialStore) -> None:
        store.save(Credential(oauth_token="tok"))
        assert stat.S_IMODE(os.stat(store.path).st_mode) == 0o600

    def test_expired_is_not_valid(self, store: CredentialStore) -> None:
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        store.save(Credential(oauth_token="tok", expires_at=past))
        assert store.load() is not None
        assert store.is_valid() is False

    def test_empty_token_is_not_valid(self, store: CredentialStore) -> None:
        store.save(Credential())
        assert store.is_valid() is False

    def test_corrupt_file(self, store: CredentialStore) -> None:
        store.path.write_text("{broken")
        assert store.load() is None

    def test_clear(self, store: CredentialStore) -> None:
        store.save(Credential(oauth_token="tok"))
        store.clear()
        assert store.path.exists() is False
        store.clear()

    def test_profiles_are_separate(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr("drchrono_sdk.credential_store.get_data_dir", lambda: tmp_path)
        CredentialStore("a").save(Credential(oauth_token="one"))
        CredentialStore("b").save(Credential(oauth_token="two"))
        assert CredentialStore("a").load().oauth_token == "one"
        assert CredentialStore("b").load().oauth_token == "two"
