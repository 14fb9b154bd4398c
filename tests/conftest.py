"""Shared test fixtures for drchrono_sdk.

Provides free loopback ports, config isolation, and automatic reset of
the global output manager and shared client between tests.
"""

from __future__ import annotations

import socket
from pathlib import Path

import pytest

from drchrono_sdk.output import reset_output
from drchrono_sdk.shared import reset_shared


# ---------------------------------------------------------------------------
# Auto-reset global state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_globals() -> None:
    """Reset the global OutputManager and the shared DrChrono after every test."""
    yield
    reset_output()
    reset_shared()


# ---------------------------------------------------------------------------
# Loopback port fixture
# ---------------------------------------------------------------------------


def _find_free_port() -> int:
    """Find a free TCP port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def free_port() -> int:
    """A TCP port that was free a moment ago."""
    return _find_free_port()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration and data directories to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME to subdirectories of tmp_path,
    forces the XDG layout regardless of platform, and clears all
    DRCHRONO_* environment variables.

    Returns:
        The tmp_path root directory.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("drchrono_sdk.config._is_xdg_platform", lambda: True)

    for var in [
        "DRCHRONO_CLIENT_ID",
        "DRCHRONO_CLIENT_SECRET",
        "DRCHRONO_BASE_URL",
        "DRCHRONO_LOCAL_HTTP_PORT",
        "DRCHRONO_AUTHORIZE_TIMEOUT",
    ]:
        monkeypatch.delenv(var, raising=False)

    return tmp_path
