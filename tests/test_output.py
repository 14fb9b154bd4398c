"""Tests for the CLI output layer.

Covers:
- OutputFormat resolution (auto -> rich/plain based on TTY)
- NO_COLOR / TERM=dumb color disabling
- stdout vs stderr discipline
- Quiet and verbose modes
- format_response in JSON and plain formats
- Global instance management
"""

from __future__ import annotations

import json

import pytest

from drchrono_sdk import output as output_module
from drchrono_sdk.output import (
    OutputFormat,
    OutputManager,
    _should_disable_color,
    get_output,
    reset_output,
    set_output,
)


@pytest.fixture()
def non_tty(monkeypatch):
    """Patch stdout.isatty() to return False."""
    monkeypatch.setattr("drchrono_sdk.output._is_tty", lambda: False)


@pytest.fixture()
def tty(monkeypatch):
    """Patch stdout.isatty() to return True."""
    monkeypatch.setattr("drchrono_sdk.output._is_tty", lambda: True)


class TestOutputFormatResolution:
    def test_auto_resolves_to_plain_when_not_tty(self, non_tty):
        assert OutputManager(format=OutputFormat.AUTO).format == OutputFormat.PLAIN

    def test_auto_resolves_to_rich_when_tty(self, tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.delenv("TERM", raising=False)
        assert OutputManager(format=OutputFormat.AUTO).format == OutputFormat.RICH

    def test_no_color_forces_plain(self, tty):
        assert OutputManager(no_color=True).format == OutputFormat.PLAIN

    def test_explicit_format_kept(self, non_tty):
        assert OutputManager(format=OutputFormat.JSON).format == OutputFormat.JSON


class TestColorDisabling:
    def test_no_color_env(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "")
        assert _should_disable_color() is True

    def test_term_dumb(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "dumb")
        assert _should_disable_color() is True

    def test_default(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm-256color")
        assert _should_disable_color() is False


class TestStreams:
    def test_data_goes_to_stdout(self, non_tty, capsys):
        OutputManager(no_color=True).print_data("tok123")
        captured = capsys.readouterr()
        assert captured.out == "tok123\n"
        assert captured.err == ""

    def test_diagnostics_go_to_stderr(self, non_tty, capsys):
        mgr = OutputManager(no_color=True)
        mgr.info("waiting")
        mgr.warning("expired")
        mgr.error("failed")
        captured = capsys.readouterr()
        assert captured.out == ""
        assert "waiting" in captured.err
        assert "Warning: expired" in captured.err
        assert "Error: failed" in captured.err

    def test_quiet_suppresses_info_not_errors(self, non_tty, capsys):
        mgr = OutputManager(no_color=True, quiet=True)
        mgr.info("hidden")
        mgr.success("hidden too")
        mgr.error("shown")
        err = capsys.readouterr().err
        assert "hidden" not in err
        assert "shown" in err

    def test_debug_only_when_verbose(self, non_tty, capsys):
        OutputManager(no_color=True).debug("quiet")
        OutputManager(no_color=True, verbose=True).debug("loud")
        err = capsys.readouterr().err
        assert "quiet" not in err
        assert "[debug] loud" in err


class TestFormatResponse:
    def test_json(self, non_tty, capsys):
        OutputManager(format=OutputFormat.JSON).format_response({"id": 1, "name": "Ada"})
        assert json.loads(capsys.readouterr().out) == {"id": 1, "name": "Ada"}

    def test_plain_dict(self, non_tty, capsys):
        OutputManager(format=OutputFormat.PLAIN).format_response({"id": 1})
        assert capsys.readouterr().out == "id\t1\n"

    def test_plain_list_of_dicts(self, non_tty, capsys):
        OutputManager(format=OutputFormat.PLAIN).format_response(
            [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}]
        )
        assert capsys.readouterr().out == "1\ta\n2\tb\n"

    def test_plain_scalar(self, non_tty, capsys):
        OutputManager(format=OutputFormat.PLAIN).format_response("hello")
        assert capsys.readouterr().out == "hello\n"


class TestGlobalInstance:
    def test_lazy_default(self):
        reset_output()
        assert isinstance(get_output(), OutputManager)

    def test_set_output(self, non_tty, capsys):
        mgr = OutputManager(no_color=True)
        set_output(mgr)
        assert get_output() is mgr
        output_module.error("via module")
        assert "Error: via module" in capsys.readouterr().err
