"""Tests for the drchrono-sdk command line tool."""

from __future__ import annotations

import json
from concurrent.futures import Future
from pathlib import Path
from typing import Any
from unittest.mock import patch

import httpx
import pytest
from typer.testing import CliRunner

from drchrono_sdk import __version__
from drchrono_sdk.app import app
from drchrono_sdk.client import DrChrono
from drchrono_sdk.credential_store import CredentialStore
from drchrono_sdk.exceptions import APIError, ProviderDeniedError
from drchrono_sdk.config import save_settings
from drchrono_sdk.models import APIResponse, AuthorizationResult, Credential, Settings


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner(env={"NO_COLOR": "1"})


@pytest.fixture
def identity(isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolated config with a client identity in the environment."""
    monkeypatch.setenv("DRCHRONO_CLIENT_ID", "cli-id")
    monkeypatch.setenv("DRCHRONO_CLIENT_SECRET", "cli-secret")
    return isolated_config


def _completed(result: Any = None, error: Exception | None = None) -> Future:
    future: Future = Future()
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(result)
    return future


class TestGlobal:
    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_no_args_shows_help(self, runner: CliRunner) -> None:
        result = runner.invoke(app, [])
        assert "login" in result.output


# ---------------------------------------------------------------------------
# login
# ---------------------------------------------------------------------------


class TestLogin:
    def test_success_stores_token(
        self, runner: CliRunner, identity: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        calls: list[tuple[Any, ...]] = []

        def fake_authenticate(self: DrChrono, scheme: str, scope: str, state: str, params: Any):
            calls.append((self.local_http_port, scheme, scope, state, params))
            return _completed(
                AuthorizationResult(
                    Credential(oauth_token="tok", refresh_token="ref"),
                    httpx.Response(200),
                    {"access_token": "tok"},
                )
            )

        monkeypatch.setattr(DrChrono, "authenticate", fake_authenticate)
        result = runner.invoke(
            app,
            [
                "login",
                "--scheme", "myapp",
                "--scope", "clinical",
                "--state", "xyz123",
                "--port", "9191",
                "-P", "prompt=login",
            ],
        )

        assert result.exit_code == 0, result.output
        assert calls == [(9191, "myapp", "clinical", "xyz123", {"prompt": "login"})]
        stored = CredentialStore("default").load()
        assert stored is not None
        assert stored.oauth_token == "tok"
        assert stored.refresh_token == "ref"

    def test_scheme_from_settings(
        self, runner: CliRunner, identity: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        save_settings(Settings(redirect_scheme="fromsettings", scope="user"))
        seen: list[tuple[str, str]] = []

        def fake_authenticate(self: DrChrono, scheme: str, scope: str, state: str, params: Any):
            seen.append((scheme, scope))
            return _completed(AuthorizationResult(Credential(oauth_token="t"), httpx.Response(200)))

        monkeypatch.setattr(DrChrono, "authenticate", fake_authenticate)
        result = runner.invoke(app, ["login", "--profile", "work"])
        assert result.exit_code == 0, result.output
        assert seen == [("fromsettings", "user")]
        assert CredentialStore("work").load() is not None

    def test_missing_scheme(self, runner: CliRunner, identity: Path) -> None:
        result = runner.invoke(app, ["login"])
        assert result.exit_code == 2
        assert "redirect scheme" in result.output

    def test_missing_identity(self, runner: CliRunner, isolated_config: Path) -> None:
        result = runner.invoke(app, ["login", "--scheme", "myapp"])
        assert result.exit_code == 1
        assert "client ID" in result.output

    def test_denied(self, runner: CliRunner, identity: Path) -> None:
        denied = _completed(error=ProviderDeniedError("access_denied"))
        with patch.object(DrChrono, "authenticate", return_value=denied) as mock_auth:
            result = runner.invoke(app, ["login", "--scheme", "myapp"])
        mock_auth.assert_called_once()
        assert result.exit_code == 3
        assert "access_denied" in result.output
        assert CredentialStore("default").load() is None

    def test_bad_param(self, runner: CliRunner, identity: Path) -> None:
        result = runner.invoke(app, ["login", "--scheme", "myapp", "-P", "novalue"])
        assert result.exit_code == 2


# ---------------------------------------------------------------------------
# token / logout
# ---------------------------------------------------------------------------


class TestToken:
    def test_no_token(self, runner: CliRunner, isolated_config: Path) -> None:
        result = runner.invoke(app, ["token"])
        assert result.exit_code == 1
        assert "No stored token" in result.output

    def test_prints_token(self, runner: CliRunner, isolated_config: Path) -> None:
        CredentialStore("default").save(Credential(oauth_token="tok123"))
        result = runner.invoke(app, ["--plain", "token"])
        assert result.exit_code == 0
        assert "tok123" in result.output

    def test_json(self, runner: CliRunner, isolated_config: Path) -> None:
        CredentialStore("default").save(Credential(oauth_token="tok123", refresh_token="r"))
        result = runner.invoke(app, ["--json", "token"])
        assert result.exit_code == 0
        assert '"oauth_token": "tok123"' in result.output
        assert '"refresh_token": "r"' in result.output

    def test_logout(self, runner: CliRunner, isolated_config: Path) -> None:
        store = CredentialStore("default")
        store.save(Credential(oauth_token="tok123"))
        result = runner.invoke(app, ["logout"])
        assert result.exit_code == 0
        assert store.load() is None


# ---------------------------------------------------------------------------
# request
# ---------------------------------------------------------------------------


class TestRequest:
    def test_sends_with_stored_credential(
        self, runner: CliRunner, identity: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        CredentialStore("default").save(Credential(oauth_token="tok123"))
        calls: list[dict[str, Any]] = []

        def fake_request(self: DrChrono, endpoint: str, method: str, **kwargs: Any):
            calls.append(
                {"endpoint": endpoint, "method": method, "token": self.token, **kwargs}
            )
            return APIResponse(data={"results": [{"id": 1}]}, response=httpx.Response(200))

        monkeypatch.setattr(DrChrono, "request", fake_request)
        result = runner.invoke(
            app,
            ["--json", "request", "get", "/api/users", "-P", "page=2", "-H", "X-Trace: abc"],
        )

        assert result.exit_code == 0, result.output
        assert calls == [
            {
                "endpoint": "/api/users",
                "method": "GET",
                "token": ("tok123", ""),
                "parameters": {"page": "2"},
                "headers": {"X-Trace": "abc"},
                "check_token_expiration": True,
            }
        ]
        start = result.output.index("{")
        assert json.loads(result.output[start:]) == {"results": [{"id": 1}]}

    def test_unsupported_method(self, runner: CliRunner, identity: Path) -> None:
        result = runner.invoke(app, ["request", "TRACE", "/api/users"])
        assert result.exit_code == 2

    def test_without_login(self, runner: CliRunner, identity: Path) -> None:
        result = runner.invoke(app, ["request", "GET", "/api/users"])
        assert result.exit_code == 1
        assert "drchrono-sdk login" in result.output

    def test_api_error_exit_code(
        self, runner: CliRunner, identity: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        CredentialStore("default").save(Credential(oauth_token="tok123"))

        def fake_request(self: DrChrono, endpoint: str, method: str, **kwargs: Any):
            raise APIError("HTTP 403: forbidden", 403)

        monkeypatch.setattr(DrChrono, "request", fake_request)
        result = runner.invoke(app, ["request", "GET", "/api/users"])
        assert result.exit_code == 7
        assert "HTTP 403" in result.output
