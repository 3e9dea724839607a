"""connctl -- manage authenticated connections to remote project-control services.

A *connection* names a deployment of the backend service: either the
reserved, unauthenticated ``local`` deployment or a remote one protected by
an OAuth2 password-grant authorization server. connctl keeps the connection
list on disk, caches passwords and tokens in the OS keyring, and sends
requests through a dispatcher that re-authenticates transparently.

Typical workflow::

    connctl connections add --label staging --url https://cw.example.com --username dev
    connctl seckeyring update --conid <ID> --username dev --password ...
    connctl request GET /api/v1/projects --conid <ID>

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models for connections, tokens, and settings.
    config: XDG paths, atomic writes, and settings resolution.
    exceptions: Tagged exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.3.0"
