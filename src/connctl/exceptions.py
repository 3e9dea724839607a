"""Exception hierarchy for connctl.

Every exception inherits from :class:`ConnctlError`, which carries two
stable pieces of information besides the message:

* ``op`` -- a short machine-readable tag (``con_not_found``,
  ``sec_keyring``, ``invalid_grant``, ``tx_failed`` ...) that callers and
  wrapper scripts branch on.
* ``exit_code`` -- a constant from :mod:`connctl.exit_codes` used by
  :func:`connctl.app.main` when the error reaches the top level.

:meth:`ConnctlError.to_dict` renders the ``{"error", "error_description"}``
shape also used by the authorization server, so server-side rejections and
local failures look the same to consumers.

Subclass hierarchy::

    ConnctlError (exit 1)
    +-- ConnectionNotFoundError    (exit 4)   con_not_found
    +-- ConnectionProtectedError   (exit 8)   con_protected
    +-- ConnectionConflictError    (exit 8)   con_conflict
    +-- ConnectionFileError        (exit 7)   con_load / con_parse / con_write
    +-- EnvironmentDiscoveryError  (exit 6)   con_environment
    +-- KeyringError               (exit 7)   sec_keyring / sec_insecure_keyring
    |   +-- SecretNotFoundError    (exit 4)   sec_keyring_secret_not_found
    |   +-- PasswordReadbackError  (exit 7)   sec_password_read
    +-- AuthError                  (exit 3)
    |   +-- AuthConfigError        (exit 2)   sec_con_config
    |   +-- AuthOptionsError       (exit 2)   sec_cli_options
    |   +-- AuthRejectedError      (exit 3)   <server error code>
    |   +-- AuthServerUnreachableError (exit 6) sec_connection
    |   +-- AuthResponseError      (exit 5)   sec_response / sec_bodyparser
    |       +-- AuthEndpointNotFoundError
    |       +-- AuthServiceDownError
    +-- DispatchError              (exit 3)
        +-- TransportError         (exit 6)   tx_connection
        |   +-- LocalTransportError
        +-- NoPasswordError        (exit 3)   tx_nopassword
        +-- AuthFailedError        (exit 3)   tx_auth
        +-- AuthExhaustedError     (exit 3)   tx_failed
"""

from __future__ import annotations

from typing import Optional

from connctl.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONFIG_ERROR,
    EXIT_CONFLICT,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_SERVER_ERROR,
)

# Connection registry tags
OP_FILE_LOAD = "con_load"
OP_FILE_PARSE = "con_parse"
OP_FILE_WRITE = "con_write"
OP_SCHEMA_UPDATE = "con_schema_update"

# Credential store tags
OP_KEYRING = "sec_keyring"
OP_INSECURE_KEYRING = "sec_insecure_keyring"

# Authorization server tags
OP_RESPONSE = "sec_response"
OP_RESPONSE_FORMAT = "sec_bodyparser"


class ConnctlError(Exception):
    """Base exception for all connctl errors.

    Args:
        message: Human-readable error description.
        op: Optional override for the class-level ``op`` tag.
        exit_code: Optional override for the class-level exit code.
    """

    op: str = "error"
    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(
        self,
        message: str,
        op: Optional[str] = None,
        exit_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        if op is not None:
            self.op = op
        if exit_code is not None:
            self.exit_code = exit_code

    def to_dict(self) -> dict[str, str]:
        """Return the error as ``{"error": op, "error_description": message}``."""
        return {"error": self.op, "error_description": self.message}


# --- Connection registry ---


class ConnectionNotFoundError(ConnctlError):
    """Raised when no connection matches the requested id."""

    op = "con_not_found"
    exit_code = EXIT_NOT_FOUND


class ConnectionProtectedError(ConnctlError):
    """Raised on an attempt to update or remove the ``local`` connection."""

    op = "con_protected"
    exit_code = EXIT_CONFLICT


class ConnectionConflictError(ConnctlError):
    """Raised when a new connection reuses the label or url of an existing one."""

    op = "con_conflict"
    exit_code = EXIT_CONFLICT


class ConnectionFileError(ConnctlError):
    """Raised when the connection file cannot be loaded, parsed, or written.

    The ``op`` is one of :data:`OP_FILE_LOAD`, :data:`OP_FILE_PARSE`,
    :data:`OP_FILE_WRITE` or :data:`OP_SCHEMA_UPDATE`.
    """

    op = OP_FILE_LOAD
    exit_code = EXIT_CONFIG_ERROR


class EnvironmentDiscoveryError(ConnctlError):
    """Raised when the gatekeeper environment endpoint cannot be queried."""

    op = "con_environment"
    exit_code = EXIT_CONNECTION_ERROR


# --- Credential store ---


class KeyringError(ConnctlError):
    """Raised when the keyring backend is unavailable or fails."""

    op = OP_KEYRING
    exit_code = EXIT_CONFIG_ERROR


class SecretNotFoundError(KeyringError):
    """Raised when no secret is stored for a connection/principal pair."""

    op = "sec_keyring_secret_not_found"
    exit_code = EXIT_NOT_FOUND

    def __init__(self, message: str = "Secret not found in keyring", **kwargs):
        super().__init__(message, **kwargs)


class PasswordReadbackError(KeyringError):
    """Raised when a stored secret does not read back identically."""

    op = "sec_password_read"


# --- Authorization server ---


class AuthError(ConnctlError):
    """Base class for failures while minting tokens."""

    op = "sec_auth"
    exit_code = EXIT_AUTH_FAILURE


class AuthConfigError(AuthError):
    """Raised when neither a known connection nor explicit auth details were given."""

    op = "sec_con_config"
    exit_code = EXIT_INVALID_USAGE


class AuthOptionsError(AuthError):
    """Raised when a required auth field is still empty after resolution."""

    op = "sec_cli_options"
    exit_code = EXIT_INVALID_USAGE


class AuthRejectedError(AuthError):
    """Raised on HTTP 400/401 from the token endpoint.

    The ``op`` is the server's own ``error`` field (e.g. ``invalid_grant``).
    """


class AuthServerUnreachableError(AuthError):
    """Raised when the token endpoint cannot be reached at all."""

    op = "sec_connection"
    exit_code = EXIT_CONNECTION_ERROR


class AuthResponseError(AuthError):
    """Raised for unexpected status codes or unparsable token responses."""

    op = OP_RESPONSE
    exit_code = EXIT_SERVER_ERROR


class AuthEndpointNotFoundError(AuthResponseError):
    """Raised on HTTP 404 from the token endpoint (wrong realm or auth URL)."""


class AuthServiceDownError(AuthResponseError):
    """Raised on HTTP 503 from the token endpoint."""

    def __init__(self, message: str = "Authentication service unavailable", **kwargs):
        super().__init__(message, **kwargs)


# --- Request dispatcher ---


class DispatchError(ConnctlError):
    """Base class for terminal failures of the request dispatcher."""

    op = "tx_error"
    exit_code = EXIT_AUTH_FAILURE


class TransportError(DispatchError):
    """Raised when the request could not be sent to a connection."""

    op = "tx_connection"
    exit_code = EXIT_CONNECTION_ERROR


class LocalTransportError(TransportError):
    """Raised when the ``local`` deployment could not be reached."""


class NoPasswordError(DispatchError):
    """Raised when re-authentication is needed but no password is cached."""

    op = "tx_nopassword"

    def __init__(self, message: str = "Unable to find password in keychain", **kwargs):
        super().__init__(message, **kwargs)


class AuthFailedError(DispatchError):
    """Raised when re-authentication with cached credentials was rejected.

    Attributes:
        cause: The :class:`AuthError` reported by the authorization server.
    """

    op = "tx_auth"

    def __init__(self, cause: AuthError):
        super().__init__(cause.message)
        self.cause = cause

    def to_dict(self) -> dict[str, str]:
        data = super().to_dict()
        data["cause"] = self.cause.op
        return data


class AuthExhaustedError(DispatchError):
    """Raised when every authentication method was tried without success."""

    op = "tx_failed"

    def __init__(self, message: str = "No other methods of authentication left to try", **kwargs):
        super().__init__(message, **kwargs)
