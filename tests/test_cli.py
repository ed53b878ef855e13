from __future__ import annotations

import asyncio
import json
import logging
import signal
from pathlib import Path

import pytest

import pinnode.cli as cli
from pinnode.agent import NodeAgent
from tests.factories import make_config, node


def test_parse_args_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PIN_CONFIG", raising=False)
    monkeypatch.delenv("PIN_THREADS", raising=False)
    monkeypatch.delenv("PIN_LOG_LEVEL", raising=False)
    args = cli._parse_args([])
    assert args.config == "config.json"
    assert args.threads == 1
    assert args.log_level == "info"


def test_parse_args_env_and_flags(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PIN_CONFIG", "/etc/pin/config.json")
    monkeypatch.setenv("PIN_THREADS", "3")
    args = cli._parse_args([])
    assert args.config == "/etc/pin/config.json"
    assert args.threads == 3
    assert cli._parse_args(["-n", "8", "-c", "x.json"]).threads == 8


def test_rejects_zero_threads() -> None:
    with pytest.raises(SystemExit):
        cli._parse_args(["--threads", "0"])


def test_missing_config_exits_with_status_1(tmp_path: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--config", str(tmp_path / "nope.json")])
    assert excinfo.value.code == 1


def test_main_runs_agent_with_loaded_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps({"clientId": "op", "apiSecret": "s", "nodes": [node("gpu", "http://localhost:11434")]})
    )
    seen = {}

    async def _fake_serve(config, threads):
        seen["config"] = config
        seen["threads"] = threads
        return 0

    monkeypatch.setattr(cli, "_serve", _fake_serve)
    cli.main(["--config", str(path), "--threads", "2"])

    assert seen["config"].client_id == "op"
    assert seen["threads"] == 2


def test_config_error_details_are_logged(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="pinnode")
    missing = tmp_path / "nope.json"
    with pytest.raises(SystemExit):
        cli.main(["--config", str(missing)])

    details = [r.getMessage() for r in caplog.records if r.getMessage().startswith("Config error details")]
    assert len(details) == 1
    assert "config_unreadable" in details[0]
    assert str(missing) in details[0]


@pytest.mark.asyncio
async def test_signal_fallback_stops_agent_through_the_loop(monkeypatch: pytest.MonkeyPatch) -> None:
    installed = {}

    def _unsupported(self, sig, callback, *args):
        raise NotImplementedError

    monkeypatch.setattr(type(asyncio.get_running_loop()), "add_signal_handler", _unsupported)
    monkeypatch.setattr(signal, "signal", lambda sig, handler: installed.setdefault(sig, handler))

    agent = NodeAgent(make_config())
    cli._install_signal_handlers(agent)
    assert set(installed) == {signal.SIGINT, signal.SIGTERM}

    installed[signal.SIGTERM](signal.SIGTERM, None)
    assert agent.flag.running
    await asyncio.wait_for(agent.flag.wait_stopped(), timeout=1.0)
    assert not agent.flag.running
