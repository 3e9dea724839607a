"""Authentication: secret storage and token grants.

- :class:`CredentialStore` -- secrets keyed by (connection, principal),
  stored in the OS keyring or, when enabled, an insecure JSON file.
- :class:`AuthSession` -- password and refresh-token grants against a
  connection's authorization server.

Typical usage::

    from connctl.auth import AuthSession, CredentialStore

    store = CredentialStore.from_settings(settings)
    session = AuthSession(http_client, registry, store)
    token = session.authenticate("K3X9Q2", password="s3cret")
"""

from connctl.auth.credential_store import (
    CredentialStore,
    InsecureFileBackend,
    SecretBackend,
    SystemKeyringBackend,
)
from connctl.auth.session import AuthSession, token_endpoint

__all__ = [
    "AuthSession",
    "CredentialStore",
    "InsecureFileBackend",
    "SecretBackend",
    "SystemKeyringBackend",
    "token_endpoint",
]
