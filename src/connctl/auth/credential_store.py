"""Secret storage keyed by connection and principal.

Secrets are addressed by a *service* and a *key*:

* service -- ``<prefix>.<lowercased connection id>`` (for example
  ``org.eclipse.codewind.k3x9q2``), so every connection gets its own
  namespace and can be cleaned up as a unit;
* key -- the lowercased principal: a username, or one of the reserved
  token kinds ``access_token`` / ``refresh_token``.

Two interchangeable backends exist:

- :class:`SystemKeyringBackend` -- the OS keyring through the
  :mod:`keyring` library (macOS Keychain, Secret Service, Windows
  Credential Locker).
- :class:`InsecureFileBackend` -- a JSON array of
  :class:`~connctl.models.KeyringSecret` records in the config directory,
  for headless machines without a keyring daemon. Only used when
  explicitly enabled.

The backend is chosen once, when the :class:`CredentialStore` is built
(see :meth:`CredentialStore.from_settings`).
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import keyring
import keyring.errors
from pydantic import TypeAdapter, ValidationError

from connctl.config import atomic_write, get_insecure_keyring_path
from connctl.exceptions import (
    OP_INSECURE_KEYRING,
    KeyringError,
    PasswordReadbackError,
    SecretNotFoundError,
)
from connctl.models import KEYRING_SERVICE_PREFIX, KeyringSecret, Settings

_SECRETS_ADAPTER = TypeAdapter(list[KeyringSecret])


class SecretBackend(ABC):
    """Minimal get/set/delete interface shared by the storage backends."""

    @abstractmethod
    def get(self, service: str, key: str) -> Optional[str]:
        """Return the stored secret, or ``None`` if there is none.

        Raises:
            KeyringError: If the backend itself is unavailable.
        """
        ...

    @abstractmethod
    def set(self, service: str, key: str, secret: str) -> None:
        """Create or overwrite a secret."""
        ...

    @abstractmethod
    def delete(self, service: str, key: str) -> bool:
        """Delete a secret. Returns ``False`` if it did not exist."""
        ...


class SystemKeyringBackend(SecretBackend):
    """Store secrets in the platform keyring via :mod:`keyring`."""

    def get(self, service: str, key: str) -> Optional[str]:
        try:
            return keyring.get_password(service, key)
        except keyring.errors.KeyringError as exc:
            raise KeyringError(f"Keyring unavailable: {exc}") from exc

    def set(self, service: str, key: str, secret: str) -> None:
        try:
            keyring.set_password(service, key, secret)
        except keyring.errors.KeyringError as exc:
            raise KeyringError(f"Unable to store secret in keyring: {exc}") from exc

    def delete(self, service: str, key: str) -> bool:
        try:
            keyring.delete_password(service, key)
        except keyring.errors.PasswordDeleteError:
            return False
        except keyring.errors.KeyringError as exc:
            raise KeyringError(f"Unable to delete secret from keyring: {exc}") from exc
        return True


class InsecureFileBackend(SecretBackend):
    """Store secrets unencrypted in a JSON file.

    The file holds a flat array of ``{"service", "username", "password"}``
    records. It is rewritten atomically with ``0o600`` permissions on every
    change and removed once the last record is deleted.

    Args:
        path: Location of the file. Defaults to
            :func:`~connctl.config.get_insecure_keyring_path`.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        if self._path is None:
            self._path = get_insecure_keyring_path()
        return self._path

    def get(self, service: str, key: str) -> Optional[str]:
        for record in self._read():
            if record.service == service and record.username == key:
                return record.password
        return None

    def set(self, service: str, key: str, secret: str) -> None:
        records = [
            r for r in self._read() if not (r.service == service and r.username == key)
        ]
        records.append(KeyringSecret(service=service, username=key, password=secret))
        self._write(records)

    def delete(self, service: str, key: str) -> bool:
        records = self._read()
        remaining = [r for r in records if not (r.service == service and r.username == key)]
        if len(remaining) == len(records):
            return False
        if remaining:
            self._write(remaining)
        else:
            try:
                self.path.unlink()
            except OSError as exc:
                raise KeyringError(str(exc), op=OP_INSECURE_KEYRING) from exc
        return True

    def _read(self) -> list[KeyringSecret]:
        if not self.path.is_file():
            return []
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise KeyringError(str(exc), op=OP_INSECURE_KEYRING) from exc
        if not text.strip():
            return []
        try:
            return _SECRETS_ADAPTER.validate_json(text)
        except ValidationError as exc:
            raise KeyringError(
                f"Corrupt insecure keyring file {self.path}: {exc}", op=OP_INSECURE_KEYRING
            ) from exc

    def _write(self, records: list[KeyringSecret]) -> None:
        data = [r.model_dump(mode="json") for r in records]
        try:
            atomic_write(self.path, json.dumps(data, indent="\t") + "\n", mode=0o600)
        except OSError as exc:
            raise KeyringError(str(exc), op=OP_INSECURE_KEYRING) from exc


class CredentialStore:
    """Read and write secrets for connections.

    Args:
        backend: Storage backend. Defaults to :class:`SystemKeyringBackend`.
        service_prefix: Prefix of every keyring service name.

    Example::

        store = CredentialStore.from_settings(settings)
        store.put("K3X9Q2", "developer", "s3cret")
        assert store.get("k3x9q2", "Developer") == "s3cret"
    """

    def __init__(
        self,
        backend: Optional[SecretBackend] = None,
        service_prefix: str = KEYRING_SERVICE_PREFIX,
    ) -> None:
        self._backend = backend or SystemKeyringBackend()
        self._service_prefix = service_prefix

    @classmethod
    def from_settings(cls, settings: Settings) -> CredentialStore:
        """Build a store whose backend follows ``settings.insecure_keyring``."""
        backend: SecretBackend
        if settings.insecure_keyring:
            backend = InsecureFileBackend()
        else:
            backend = SystemKeyringBackend()
        return cls(backend=backend, service_prefix=settings.keyring_service_prefix)

    @property
    def backend(self) -> SecretBackend:
        return self._backend

    def service_name(self, connection_id: str) -> str:
        """Keyring service name for *connection_id*."""
        return f"{self._service_prefix}.{connection_id.strip().lower()}"

    def put(self, connection_id: str, principal: str, secret: str) -> None:
        """Store a secret, then read it back to confirm the backend kept it.

        Raises:
            KeyringError: If the backend fails.
            PasswordReadbackError: If the read-back value differs.
        """
        service = self.service_name(connection_id)
        key = _normalise(principal)
        self._backend.set(service, key, secret)
        if self._backend.get(service, key) != secret:
            raise PasswordReadbackError("Saved password does not match retrieved password")

    def get(self, connection_id: str, principal: str) -> str:
        """Return the stored secret.

        Raises:
            SecretNotFoundError: If nothing is stored for the pair.
            KeyringError: If the backend is unavailable.
        """
        secret = self._backend.get(self.service_name(connection_id), _normalise(principal))
        if secret is None:
            raise SecretNotFoundError()
        return secret

    def find(self, connection_id: str, principal: str) -> Optional[str]:
        """Like :meth:`get` but returns ``None`` when the secret is absent."""
        try:
            return self.get(connection_id, principal)
        except SecretNotFoundError:
            return None

    def delete(self, connection_id: str, principal: str) -> bool:
        """Delete a secret. Absence is not an error.

        Returns:
            ``True`` if a secret was removed.

        Raises:
            KeyringError: If the backend fails.
        """
        return self._backend.delete(self.service_name(connection_id), _normalise(principal))


def _normalise(principal: str) -> str:
    return principal.strip().lower()
