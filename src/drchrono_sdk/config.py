"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles the optional persistent configuration of drchrono_sdk:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.drchrono-sdk/`` on macOS and Windows. See :func:`get_config_dir`
  and :func:`get_data_dir`.
* **Settings** -- A single :class:`~drchrono_sdk.models.Settings` JSON
  file storing the client identity sources, listener port, base URL and
  timeouts. See :func:`load_settings` and :func:`save_settings`.
* **Precedence resolution** -- :func:`resolve_settings` merges explicit
  overrides, ``DRCHRONO_*`` environment variables, the settings file and
  defaults.
* **Credential resolution** -- :func:`resolve_credential` reads secrets
  from env vars, files, or interactive prompts.

The core client never reads configuration on its own; these helpers
exist for applications and for the ``drchrono-sdk`` command line tool.
"""

from __future__ import annotations

import getpass
import json
import os
import platform
import sys
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from drchrono_sdk.exceptions import ConfigError
from drchrono_sdk.models import ClientIdentity, Settings

_APP_NAME = "drchrono-sdk"
_CONFIG_FILENAME = "config.json"

_ENV_CLIENT_ID = "DRCHRONO_CLIENT_ID"
_ENV_CLIENT_SECRET = "DRCHRONO_CLIENT_SECRET"
_ENV_OVERRIDES = {
    "DRCHRONO_BASE_URL": "base_url",
    "DRCHRONO_LOCAL_HTTP_PORT": "local_http_port",
    "DRCHRONO_AUTHORIZE_TIMEOUT": "authorize_timeout",
}


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/drchrono-sdk/`` (default
    ``~/.config/drchrono-sdk/``). On macOS/Windows: ``~/.drchrono-sdk/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (stored credentials), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/drchrono-sdk/`` (default
    ``~/.local/share/drchrono-sdk/``). On macOS/Windows:
    ``~/.drchrono-sdk/data/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created next to *path* so that ``os.replace`` is
    an atomic rename on POSIX. When *mode* is given it is applied to the
    temp file before any content is written.
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


# --- Settings ---


def _settings_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_settings() -> Settings:
    """Load settings from the config directory.

    Returns:
        The stored :class:`~drchrono_sdk.models.Settings`, or defaults if
        the file does not exist.

    Raises:
        ConfigError: If the file contains invalid JSON or fails validation.
    """
    path = _settings_path()
    if not path.is_file():
        return Settings()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return Settings.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid settings at {path}: {exc}") from exc


def save_settings(settings: Settings) -> None:
    """Persist settings atomically to disk."""
    data = settings.model_dump(mode="json")
    atomic_write(_settings_path(), json.dumps(data, indent=2) + "\n")


def resolve_settings(**overrides: Any) -> Settings:
    """Resolve settings with the full precedence chain.

    Precedence (high to low):
        1. Explicit keyword overrides (``None`` values are ignored)
        2. ``DRCHRONO_BASE_URL``, ``DRCHRONO_LOCAL_HTTP_PORT``,
           ``DRCHRONO_AUTHORIZE_TIMEOUT`` environment variables
        3. The settings file
        4. Defaults

    Raises:
        ConfigError: If the merged values fail validation.
    """
    data = load_settings().model_dump()

    for env_var, key in _ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            data[key] = value

    data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return Settings.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings: {exc}") from exc


def resolve_client_identity(settings: Settings) -> ClientIdentity:
    """Resolve the OAuth client identity.

    ``DRCHRONO_CLIENT_ID`` / ``DRCHRONO_CLIENT_SECRET`` take precedence;
    otherwise the settings' ``client_id_source`` and
    ``client_secret_source`` are resolved with :func:`resolve_credential`.

    Raises:
        ConfigError: If either half of the identity cannot be resolved.
    """
    client_id = os.environ.get(_ENV_CLIENT_ID)
    if not client_id:
        if not settings.client_id_source:
            raise ConfigError(
                f"No client ID configured: set {_ENV_CLIENT_ID} or client_id_source"
            )
        client_id = resolve_credential(settings.client_id_source)

    client_secret = os.environ.get(_ENV_CLIENT_SECRET)
    if client_secret is None:
        if not settings.client_secret_source:
            raise ConfigError(
                f"No client secret configured: set {_ENV_CLIENT_SECRET} or "
                "client_secret_source"
            )
        client_secret = resolve_credential(settings.client_secret_source)

    return ClientIdentity(client_id=client_id, client_secret=client_secret)


# --- Credential source resolution ---


def resolve_credential(source: str) -> str:
    """Resolve a credential from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace
        - ``"prompt"`` -- prompts user interactively (requires a TTY)

    Raises:
        ConfigError: If the source can't be resolved.
    """
    if source.startswith("env:"):
        var_name = source[4:]
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(
                f"Environment variable '{var_name}' is not set (source: {source})"
            )
        return value

    if source.startswith("file:"):
        path = Path(source[5:]).expanduser()
        if not path.is_file():
            raise ConfigError(f"Credential file not found: {path} (source: {source})")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(f"Cannot read credential file {path}: {exc}") from exc

    if source == "prompt":
        if not sys.stdin.isatty():
            raise ConfigError(
                "Cannot prompt for credentials: stdin is not a TTY (source: prompt)"
            )
        return getpass.getpass("Enter credential: ")

    raise ConfigError(f"Unknown credential source format: {source}")
