"""Typer application and CLI entry point for connctl.

The root callback turns the global flags into a
:class:`~connctl.output.OutputManager` and a
:class:`~connctl.models.Settings` object, which commands read back through
:func:`connctl.commands._common.open_services`.

:func:`main` is the console-script entry point declared in
``pyproject.toml``. Errors that escape a command as
:class:`~connctl.exceptions.ConnctlError` exit with the error's code;
anything else is written to a crash log under the data directory.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from connctl import __version__
from connctl.commands.connections import connections_app
from connctl.commands.request import request_command
from connctl.commands.security import seckeyring_app, sectoken_app
from connctl.exit_codes import EXIT_GENERIC_FAILURE

app = typer.Typer(
    name="connctl",
    help="Manage connections to remote deployments and send authenticated requests.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(connections_app, name="connections", help="Connection management.")
app.add_typer(sectoken_app, name="sectoken", help="Access token management.")
app.add_typer(seckeyring_app, name="seckeyring", help="Cached password management.")
app.command("request")(request_command)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"connctl {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
    insecure_keyring: bool = typer.Option(
        False,
        "--insecure-keyring",
        help="Store secrets in a plain JSON file instead of the system keyring.",
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="HTTP timeout in seconds."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global output manager and stores the resolved
    :class:`~connctl.models.Settings` in ``ctx.obj["settings"]``.
    """
    from connctl.commands._common import reporting_errors
    from connctl.config import load_settings
    from connctl.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))

    ctx.ensure_object(dict)
    with reporting_errors():
        ctx.obj["settings"] = load_settings(
            insecure_keyring=insecure_keyring or None,
            timeout=timeout,
        )


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from connctl.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``connctl`` console script.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from connctl.exceptions import ConnctlError
        from connctl.output import error, get_output

        if isinstance(exc, ConnctlError):
            get_output().render_error(exc)
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
