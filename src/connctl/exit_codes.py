"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to an error family and is referenced by the matching
:class:`~connctl.exceptions.ConnctlError` subclass. Wrapper scripts (IDE
extensions, CI jobs) can branch on the exit code and only parse the JSON
error body when they need the precise tag.

Example::

    $ connctl request GET /api/v1/projects --conid K3X9Q2
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- no cached password and the token was rejected
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid or incomplete options."""

EXIT_AUTH_FAILURE = 3
"""Authentication failed or no authentication method was left to try."""

EXIT_NOT_FOUND = 4
"""The requested connection or secret does not exist."""

EXIT_SERVER_ERROR = 5
"""The authorization server or backend answered with an error."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_CONFIG_ERROR = 7
"""The connection file or credential store could not be read or written."""

EXIT_CONFLICT = 8
"""The change collides with an existing or protected connection."""
