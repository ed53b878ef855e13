from __future__ import annotations

import json
from pathlib import Path

import pytest

from pinnode.config import DEFAULT_SERVER_URL, env_threads, load_config, parse_config
from pinnode.exceptions import PinConfigError
from tests.factories import make_config, node


def _write(tmp_path: Path, data) -> Path:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data) if not isinstance(data, str) else data)
    return path


def test_load_config_applies_defaults(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        {
            "clientId": "op_1",
            "apiSecret": "s3cret",
            "nodes": [node("gpu-1", "http://localhost:11434")],
        },
    )
    config = load_config(path)
    assert config.client_id == "op_1"
    assert config.server_url == DEFAULT_SERVER_URL
    assert config.reconnect_delay_secs == 5
    assert config.payout_address is None
    assert config.nodes[0].price_per_thousand_tokens == pytest.approx(0.001)


def test_config_keeps_node_order_and_builds_endpoint_table() -> None:
    config = make_config(
        nodes=[
            node("b", "http://b.local", api_mode="openai"),
            node("a", "http://a.local/"),
        ]
    )
    assert [n.alias for n in config.nodes] == ["b", "a"]
    assert config.first_node.alias == "b"
    assert config.endpoint_table() == {
        "b": ("http://b.local", "openai"),
        "a": ("http://a.local/", "ollama"),
    }


def test_config_is_immutable() -> None:
    config = make_config()
    with pytest.raises(Exception):
        config.client_id = "other"  # type: ignore[misc]


def test_missing_file_raises_config_error(tmp_path: Path) -> None:
    with pytest.raises(PinConfigError) as excinfo:
        load_config(tmp_path / "missing.json")
    assert excinfo.value.code == "config_unreadable"


def test_invalid_json_raises_config_error(tmp_path: Path) -> None:
    with pytest.raises(PinConfigError) as excinfo:
        load_config(_write(tmp_path, "{not json"))
    assert excinfo.value.code == "config_invalid_json"


def test_empty_nodes_rejected() -> None:
    with pytest.raises(PinConfigError) as excinfo:
        parse_config({"clientId": "c", "apiSecret": "s", "nodes": []})
    assert "No nodes configured" in excinfo.value.message


def test_missing_required_field_rejected() -> None:
    with pytest.raises(PinConfigError):
        parse_config({"clientId": "c", "nodes": [node("a", "http://a")]})


def test_env_threads(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PIN_THREADS", "4")
    assert env_threads() == 4
    monkeypatch.setenv("PIN_THREADS", "0")
    assert env_threads() == 1
    monkeypatch.setenv("PIN_THREADS", "many")
    with pytest.raises(PinConfigError):
        env_threads()
