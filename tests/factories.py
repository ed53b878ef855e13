from __future__ import annotations

from typing import Any, Dict, List, Optional

from pinnode.config import Config, parse_config


def node(alias: str, uri: str, api_mode: str = "ollama", **extra: Any) -> Dict[str, Any]:
    return {
        "alias": alias,
        "inferenceUri": uri,
        "apiMode": api_mode,
        "region": extra.pop("region", "eu"),
        "capacity": extra.pop("capacity", 2),
        **extra,
    }


def make_config(
    *,
    nodes: Optional[List[Dict[str, Any]]] = None,
    payout_address: Optional[str] = None,
    reconnect_delay_secs: float = 0,
) -> Config:
    data: Dict[str, Any] = {
        "clientId": "client-1",
        "apiSecret": "secret",
        "serverUrl": "ws://coordinator.test/ws",
        "reconnectDelaySecs": reconnect_delay_secs,
        "nodes": nodes or [node("node-a", "http://a.local:11434")],
    }
    if payout_address is not None:
        data["payoutAddress"] = payout_address
    return parse_config(data)
