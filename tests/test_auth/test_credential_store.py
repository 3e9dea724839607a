"""Tests for the credential store and its backends."""

from __future__ import annotations

import json
import os
import stat
from pathlib import Path
from typing import Optional

import keyring.errors
import pytest

from conftest import MemoryKeyring
from connctl.auth import CredentialStore, InsecureFileBackend, SecretBackend, SystemKeyringBackend
from connctl.exceptions import KeyringError, PasswordReadbackError, SecretNotFoundError
from connctl.models import Settings


class LossyBackend(SecretBackend):
    """Backend that silently mangles what it stores."""

    def __init__(self) -> None:
        self.data: dict[tuple[str, str], str] = {}

    def get(self, service: str, key: str) -> Optional[str]:
        return self.data.get((service, key))

    def set(self, service: str, key: str, secret: str) -> None:
        self.data[(service, key)] = secret[:-1]

    def delete(self, service: str, key: str) -> bool:
        return self.data.pop((service, key), None) is not None


class BrokenKeyring(MemoryKeyring):
    def get_password(self, service: str, username: str) -> str | None:
        raise keyring.errors.KeyringLocked("locked")

    def set_password(self, service: str, username: str, password: str) -> None:
        raise keyring.errors.PasswordSetError("denied")


# ---------------------------------------------------------------------------
# Addressing
# ---------------------------------------------------------------------------


class TestAddressing:
    def test_service_name_is_lowercased(self) -> None:
        assert CredentialStore().service_name("K3X9Q2") == "org.eclipse.codewind.k3x9q2"

    def test_custom_prefix(self) -> None:
        assert CredentialStore(service_prefix="com.example").service_name("A") == "com.example.a"

    def test_principal_is_case_insensitive(self, memory_keyring: MemoryKeyring) -> None:
        store = CredentialStore()
        store.put("K1", "Developer", "s3cret")
        assert store.get("k1", "developer") == "s3cret"
        assert ("org.eclipse.codewind.k1", "developer") in memory_keyring.passwords


# ---------------------------------------------------------------------------
# System keyring backend
# ---------------------------------------------------------------------------


class TestSystemKeyring:
    def test_put_get_delete(self, memory_keyring: MemoryKeyring) -> None:
        store = CredentialStore()
        store.put("K1", "access_token", "tok")
        assert store.get("K1", "access_token") == "tok"
        assert store.delete("K1", "access_token") is True
        assert memory_keyring.passwords == {}
        with pytest.raises(SecretNotFoundError):
            store.get("K1", "access_token")

    def test_secrets_round_trip_exactly(self) -> None:
        store = CredentialStore()
        store.put("K1", "dev", "  padded secret  ")
        assert store.get("K1", "dev") == "  padded secret  "

    def test_get_missing_raises(self) -> None:
        with pytest.raises(SecretNotFoundError) as exc_info:
            CredentialStore().get("K1", "nobody")
        assert exc_info.value.op == "sec_keyring_secret_not_found"
        assert exc_info.value.message == "Secret not found in keyring"

    def test_find_missing_returns_none(self) -> None:
        assert CredentialStore().find("K1", "nobody") is None

    def test_delete_missing_returns_false(self) -> None:
        assert CredentialStore().delete("K1", "nobody") is False

    def test_backend_errors_are_keyring_errors(self) -> None:
        keyring.set_keyring(BrokenKeyring())
        store = CredentialStore(backend=SystemKeyringBackend())
        with pytest.raises(KeyringError) as exc_info:
            store.get("K1", "dev")
        assert exc_info.value.op == "sec_keyring"
        with pytest.raises(KeyringError):
            store.put("K1", "dev", "x")


class TestReadback:
    def test_mismatch_raises(self) -> None:
        store = CredentialStore(backend=LossyBackend())
        with pytest.raises(PasswordReadbackError) as exc_info:
            store.put("K1", "dev", "s3cret")
        assert exc_info.value.message == "Saved password does not match retrieved password"


# ---------------------------------------------------------------------------
# Insecure file backend
# ---------------------------------------------------------------------------


class TestInsecureFileBackend:
    def test_writes_json_array(self, tmp_path: Path) -> None:
        path = tmp_path / "insecure_keyring.json"
        store = CredentialStore(backend=InsecureFileBackend(path))
        store.put("K1", "Dev", "s3cret")

        assert json.loads(path.read_text()) == [
            {"service": "org.eclipse.codewind.k1", "username": "dev", "password": "s3cret"}
        ]

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_file_is_private(self, tmp_path: Path) -> None:
        path = tmp_path / "insecure_keyring.json"
        CredentialStore(backend=InsecureFileBackend(path)).put("K1", "dev", "s3cret")
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_overwrite_replaces_record(self, tmp_path: Path) -> None:
        path = tmp_path / "insecure_keyring.json"
        store = CredentialStore(backend=InsecureFileBackend(path))
        store.put("K1", "dev", "one")
        store.put("K1", "dev", "two")
        assert store.get("K1", "dev") == "two"
        assert len(json.loads(path.read_text())) == 1

    def test_file_removed_when_last_secret_deleted(self, tmp_path: Path) -> None:
        path = tmp_path / "insecure_keyring.json"
        store = CredentialStore(backend=InsecureFileBackend(path))
        store.put("K1", "dev", "one")
        store.put("K1", "access_token", "tok")

        assert store.delete("K1", "dev") is True
        assert path.exists()
        assert store.delete("K1", "access_token") is True
        assert not path.exists()

    def test_missing_file_means_no_secrets(self, tmp_path: Path) -> None:
        store = CredentialStore(backend=InsecureFileBackend(tmp_path / "absent.json"))
        assert store.find("K1", "dev") is None
        assert store.delete("K1", "dev") is False

    def test_corrupt_file(self, tmp_path: Path) -> None:
        path = tmp_path / "insecure_keyring.json"
        path.write_text('{"not": "a list"}')
        with pytest.raises(KeyringError) as exc_info:
            CredentialStore(backend=InsecureFileBackend(path)).get("K1", "dev")
        assert exc_info.value.op == "sec_insecure_keyring"

    def test_default_path(self, isolated_config: Path) -> None:
        backend = InsecureFileBackend()
        assert backend.path == isolated_config / "config" / "connctl" / "insecure_keyring.json"


class TestFromSettings:
    def test_system_keyring_by_default(self) -> None:
        store = CredentialStore.from_settings(Settings())
        assert isinstance(store.backend, SystemKeyringBackend)

    def test_insecure_when_enabled(self) -> None:
        store = CredentialStore.from_settings(Settings(insecure_keyring=True))
        assert isinstance(store.backend, InsecureFileBackend)

    def test_prefix_from_settings(self) -> None:
        store = CredentialStore.from_settings(Settings(keyring_service_prefix="com.example"))
        assert store.service_name("K1") == "com.example.k1"
