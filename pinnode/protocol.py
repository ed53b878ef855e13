"""
Wire codec for the coordination service protocol.

Every frame is a JSON object whose ``type`` field selects the variant:

    decode_server_message('{"type": "PING"}')   -> Ping()
    encode_message(Pong())                       -> '{"type":"PONG"}'

Decoding distinguishes an unrecognized tag (UnknownMessageType) from a frame that
is not JSON or has bad fields for its tag (MessageDecodeError). Both are
ProtocolError, which callers log and drop.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Dict, Union

from pydantic import Field, TypeAdapter, ValidationError

from pinnode.exceptions import MessageDecodeError, UnknownMessageType
from pinnode.models import (
    Auth,
    AuthSuccess,
    Heartbeat,
    HeartbeatAck,
    InferenceError,
    InferenceRequest,
    InferenceResponse,
    InterviewComplete,
    InterviewRequest,
    InterviewResult,
    ModelListAck,
    Ping,
    Pong,
    RegisterNode,
    RegisterNodeAck,
    ServerError,
    UpdateWallet,
    UpdateWalletAck,
    WireModel,
)

ServerMessage = Annotated[
    Union[
        AuthSuccess,
        ServerError,
        Ping,
        HeartbeatAck,
        ModelListAck,
        RegisterNodeAck,
        UpdateWalletAck,
        InferenceRequest,
        InterviewRequest,
        InterviewComplete,
    ],
    Field(discriminator="type"),
]

ClientMessage = Annotated[
    Union[
        Auth,
        Pong,
        Heartbeat,
        UpdateWallet,
        RegisterNode,
        InferenceResponse,
        InferenceError,
        InterviewResult,
    ],
    Field(discriminator="type"),
]

_server_adapter: TypeAdapter[Any] = TypeAdapter(ServerMessage)
_client_adapter: TypeAdapter[Any] = TypeAdapter(ClientMessage)


def _tags(*models: type[WireModel]) -> frozenset[str]:
    return frozenset(m.model_fields["type"].default for m in models)


SERVER_MESSAGE_TYPES = _tags(
    AuthSuccess,
    ServerError,
    Ping,
    HeartbeatAck,
    ModelListAck,
    RegisterNodeAck,
    UpdateWalletAck,
    InferenceRequest,
    InterviewRequest,
    InterviewComplete,
)

CLIENT_MESSAGE_TYPES = _tags(
    Auth,
    Pong,
    Heartbeat,
    UpdateWallet,
    RegisterNode,
    InferenceResponse,
    InferenceError,
    InterviewResult,
)


def _load_object(raw: str | bytes) -> Dict[str, Any]:
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MessageDecodeError(f"Invalid JSON: {exc}", raw=text) from exc
    if not isinstance(data, dict):
        raise MessageDecodeError("Frame is not a JSON object", raw=text)
    return data


def _decode(raw: str | bytes, known: frozenset[str], adapter: TypeAdapter[Any]) -> Any:
    data = _load_object(raw)
    tag = data.get("type")
    if tag not in known:
        raise UnknownMessageType(tag if isinstance(tag, str) else None, raw=str(raw))
    try:
        return adapter.validate_python(data)
    except ValidationError as exc:
        raise MessageDecodeError(
            f"Invalid {tag} message: {exc.error_count()} field error(s)",
            raw=str(raw),
            details={"errors": exc.errors(include_url=False)},
        ) from exc


def decode_server_message(raw: str | bytes) -> Any:
    """Parse one inbound frame into its ServerMessage variant."""
    return _decode(raw, SERVER_MESSAGE_TYPES, _server_adapter)


def decode_client_message(raw: str | bytes) -> Any:
    """Parse one outbound frame back into its ClientMessage variant."""
    return _decode(raw, CLIENT_MESSAGE_TYPES, _client_adapter)


def encode_message(message: WireModel) -> str:
    """Serialize any wire model to a JSON text frame."""
    return message.model_dump_json(by_alias=True)


__all__ = [
    "ServerMessage",
    "ClientMessage",
    "SERVER_MESSAGE_TYPES",
    "CLIENT_MESSAGE_TYPES",
    "decode_server_message",
    "decode_client_message",
    "encode_message",
]
