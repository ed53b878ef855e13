"""
Node agent configuration.

The agent reads one JSON file at startup (camelCase keys):

    {
      "clientId": "op_123",
      "apiSecret": "...",
      "payoutAddress": "0xabc...",
      "nodes": [
        {"alias": "gpu-1", "inferenceUri": "http://localhost:11434",
         "apiMode": "ollama", "region": "eu-west", "capacity": 4}
      ]
    }

Process-level defaults come from environment variables (a .env file is honored
by the CLI):

    PIN_CONFIG          config file path (default: config.json)
    PIN_LOG_LEVEL       log level (default: info)
    PIN_THREADS         concurrent inference calls (default: 1)
    PIN_OPENAI_API_KEY  bearer token for openai-style backends
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pinnode.exceptions import PinConfigError

DEFAULT_SERVER_URL = "wss://aiassist-secure.replit.app/api/v1/pin/ws"
DEFAULT_RECONNECT_DELAY_SECS = 5
DEFAULT_PRICE_PER_THOUSAND_TOKENS = 0.001
DEFAULT_CONFIG_PATH = "config.json"


class NodeConfig(BaseModel):
    """One local model server advertised to the coordination service."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    alias: str
    inference_uri: str = Field(alias="inferenceUri")
    # "openai" selects the OpenAI-compatible adapter; anything else is Ollama-style.
    api_mode: str = Field(alias="apiMode")
    region: str
    capacity: int = Field(ge=0)
    price_per_thousand_tokens: float = Field(
        default=DEFAULT_PRICE_PER_THOUSAND_TOKENS, alias="pricePerThousandTokens"
    )


class Config(BaseModel):
    """Immutable process configuration."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    client_id: str = Field(alias="clientId")
    api_secret: str = Field(alias="apiSecret")
    nodes: List[NodeConfig]
    payout_address: Optional[str] = Field(default=None, alias="payoutAddress")
    server_url: str = Field(default=DEFAULT_SERVER_URL, alias="serverUrl")
    reconnect_delay_secs: float = Field(
        default=DEFAULT_RECONNECT_DELAY_SECS, ge=0, alias="reconnectDelaySecs"
    )

    @field_validator("nodes")
    @classmethod
    def require_nodes(cls, nodes: List[NodeConfig]) -> List[NodeConfig]:
        if not nodes:
            raise ValueError(
                "No nodes configured! Add at least one node to the 'nodes' array."
            )
        return nodes

    @property
    def first_node(self) -> NodeConfig:
        return self.nodes[0]

    def endpoint_table(self) -> Dict[str, Tuple[str, str]]:
        """alias -> (inference_uri, api_mode). Later duplicates win."""
        return {node.alias: (node.inference_uri, node.api_mode) for node in self.nodes}


def load_config(path: Union[str, Path]) -> Config:
    """Read and validate a config file. Raises PinConfigError."""
    config_path = Path(path)
    try:
        raw = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PinConfigError(
            f"Failed to read config file {config_path}: {exc}",
            code="config_unreadable",
            details={"path": str(config_path)},
        ) from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise PinConfigError(
            f"Failed to parse config: {exc}",
            code="config_invalid_json",
            details={"path": str(config_path)},
        ) from exc
    return parse_config(data)


def parse_config(data: object) -> Config:
    try:
        return Config.model_validate(data)
    except ValidationError as exc:
        raise PinConfigError(
            f"Invalid config: {exc}",
            code="config_invalid",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


def env_config_path() -> str:
    return os.getenv("PIN_CONFIG", DEFAULT_CONFIG_PATH)


def env_log_level() -> str:
    return os.getenv("PIN_LOG_LEVEL", "info")


def env_threads() -> int:
    value = os.getenv("PIN_THREADS", "1")
    try:
        return max(1, int(value))
    except ValueError:
        raise PinConfigError(
            f"PIN_THREADS must be an integer, got {value!r}", code="invalid_threads"
        ) from None


__all__ = [
    "Config",
    "NodeConfig",
    "load_config",
    "parse_config",
    "env_config_path",
    "env_log_level",
    "env_threads",
    "DEFAULT_SERVER_URL",
]
