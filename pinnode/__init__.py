"""
pinnode - a node agent for the PIN inference network.

Connects to the coordination service over a WebSocket, registers local model
servers (Ollama-style or OpenAI-compatible), and serves the inference and
interview work the service assigns.

Run it:
    pinnode --config config.json --threads 4

Or embed it:
    import asyncio
    from pinnode import NodeAgent, load_config

    agent = NodeAgent(load_config("config.json"), max_concurrent=4)
    asyncio.run(agent.run())
"""

__version__ = "2.2.0"

from pinnode.agent import NodeAgent  # noqa: E402
from pinnode.config import Config, NodeConfig, load_config  # noqa: E402
from pinnode.dispatcher import Dispatcher  # noqa: E402
from pinnode.exceptions import (  # noqa: E402
    BackendError,
    MessageDecodeError,
    PeerError,
    PinConfigError,
    PinError,
    ProtocolError,
    TransportError,
    UnknownMessageType,
)
from pinnode.interview import InterviewExecutor  # noqa: E402
from pinnode.protocol import decode_server_message, encode_message  # noqa: E402
from pinnode.router import ProtocolRouter  # noqa: E402
from pinnode.session import Session, SessionEnd, SessionResult  # noqa: E402
from pinnode.signature import sign  # noqa: E402
from pinnode.state import RequestCounter, RunFlag  # noqa: E402

__all__ = [
    "__version__",
    "NodeAgent",
    "Config",
    "NodeConfig",
    "load_config",
    "Dispatcher",
    "InterviewExecutor",
    "ProtocolRouter",
    "Session",
    "SessionEnd",
    "SessionResult",
    "RunFlag",
    "RequestCounter",
    "sign",
    "decode_server_message",
    "encode_message",
    "PinError",
    "PinConfigError",
    "BackendError",
    "ProtocolError",
    "MessageDecodeError",
    "UnknownMessageType",
    "PeerError",
    "TransportError",
]
