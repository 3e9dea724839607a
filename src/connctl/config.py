"""Configuration management: XDG paths, atomic writes, and settings resolution.

This module owns everything connctl keeps on disk outside the OS keyring:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.connctl/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **File locations** -- the connection file (:func:`get_connections_path`)
  and the insecure keyring file (:func:`get_insecure_keyring_path`).
* **Atomic writes** -- :func:`atomic_write` replaces a file in one rename
  so concurrent connctl processes see either the old or the new document,
  never a partial one.
* **Settings** -- :func:`load_settings` merges CLI flags, environment
  variables and defaults into a :class:`~connctl.models.Settings`.
"""

from __future__ import annotations

import os
import platform
import tempfile
from pathlib import Path
from typing import Optional

from connctl.exceptions import ConnctlError
from connctl.exit_codes import EXIT_INVALID_USAGE
from connctl.models import Settings

_APP_NAME = "connctl"
_CONNECTIONS_FILENAME = "connections.json"
_INSECURE_KEYRING_FILENAME = "insecure_keyring.json"

ENV_INSECURE_KEYRING = "CONNCTL_INSECURE_KEYRING"
ENV_LOGIN_REDIRECT_STATUS = "CONNCTL_LOGIN_REDIRECT_STATUS"
ENV_TIMEOUT = "CONNCTL_TIMEOUT"
ENV_LOCAL_URL = "CONNCTL_LOCAL_URL"

_TRUTHY = ("1", "true", "yes", "on")


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/connctl/`` (default ``~/.config/connctl/``).
    On macOS/Windows: ``~/.connctl/``.

    Returns:
        Absolute path to the configuration directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/connctl/`` (default ``~/.local/share/connctl/``).
    On macOS/Windows: ``~/.connctl/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_connections_path() -> Path:
    """Path of the connection file (``<config_dir>/connections.json``)."""
    return get_config_dir() / _CONNECTIONS_FILENAME


def get_insecure_keyring_path() -> Path:
    """Path of the insecure keyring file (``<config_dir>/insecure_keyring.json``)."""
    return get_config_dir() / _INSECURE_KEYRING_FILENAME


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. When *mode* is
    given it is applied to the temp file before any content is written.
    On any failure the temp file is removed and the original left intact.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Settings resolution ---


def _env_flag(name: str) -> Optional[bool]:
    value = os.environ.get(name)
    if value is None or value == "":
        return None
    return value.strip().lower() in _TRUTHY


def _env_number(name: str, cast: type) -> Optional[float]:
    value = os.environ.get(name)
    if value is None or value == "":
        return None
    try:
        return cast(value)
    except ValueError:
        raise ConnctlError(
            f"Environment variable {name} must be a number, got: {value}",
            op="config_env",
            exit_code=EXIT_INVALID_USAGE,
        ) from None


def load_settings(
    insecure_keyring: Optional[bool] = None,
    login_redirect_status: Optional[int] = None,
    timeout: Optional[float] = None,
) -> Settings:
    """Resolve the process settings.

    Precedence (high to low):
        1. Explicit arguments (CLI flags)
        2. Environment variables (``CONNCTL_INSECURE_KEYRING``,
           ``CONNCTL_LOGIN_REDIRECT_STATUS``, ``CONNCTL_TIMEOUT``,
           ``CONNCTL_LOCAL_URL``)
        3. :class:`~connctl.models.Settings` defaults

    Raises:
        ConnctlError: If an environment variable holds a malformed number.
    """
    values: dict[str, object] = {}

    env_insecure = _env_flag(ENV_INSECURE_KEYRING)
    if env_insecure is not None:
        values["insecure_keyring"] = env_insecure
    env_status = _env_number(ENV_LOGIN_REDIRECT_STATUS, int)
    if env_status is not None:
        values["login_redirect_status"] = env_status
    env_timeout = _env_number(ENV_TIMEOUT, float)
    if env_timeout is not None:
        values["timeout"] = env_timeout
    env_local_url = os.environ.get(ENV_LOCAL_URL)
    if env_local_url:
        values["local_url"] = env_local_url.rstrip("/")

    if insecure_keyring:
        values["insecure_keyring"] = True
    if login_redirect_status is not None:
        values["login_redirect_status"] = login_redirect_status
    if timeout is not None:
        values["timeout"] = timeout

    return Settings(**values)
