from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Optional, Union

from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK
from websockets.frames import Close


class FakeConnection:
    """
    Scripted stand-in for a websockets client connection.

    Frames pushed with feed() are returned by recv() in order. close_from_peer()
    makes the next recv() raise ConnectionClosedOK; fail() raises
    ConnectionClosedError instead.
    """

    def __init__(self, *, fail_send: bool = False) -> None:
        self._inbound: asyncio.Queue = asyncio.Queue()
        self.sent: List[str] = []
        self.closed = False
        self.fail_send = fail_send
        self.sent_event = asyncio.Event()

    def feed(self, message: Union[Dict[str, Any], str, bytes]) -> None:
        frame = json.dumps(message) if isinstance(message, dict) else message
        self._inbound.put_nowait(frame)

    def close_from_peer(self) -> None:
        self._inbound.put_nowait(ConnectionClosedOK(Close(1000, "bye"), Close(1000, "bye"), True))

    def fail(self) -> None:
        self._inbound.put_nowait(ConnectionClosedError(None, None))

    async def recv(self) -> Union[str, bytes]:
        item = await self._inbound.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def send(self, message: str) -> None:
        if self.fail_send:
            raise ConnectionClosedError(None, None)
        self.sent.append(message)
        self.sent_event.set()

    async def close(self) -> None:
        self.closed = True

    @property
    def messages(self) -> List[Dict[str, Any]]:
        return [json.loads(frame) for frame in self.sent]

    def types(self) -> List[str]:
        return [m["type"] for m in self.messages]

    async def wait_for(self, message_type: str, count: int = 1, timeout: float = 2.0) -> None:
        async def _poll() -> None:
            while self.types().count(message_type) < count:
                await asyncio.sleep(0.005)

        await asyncio.wait_for(_poll(), timeout=timeout)


class Connector:
    """Hands out prepared FakeConnections; raises once they run out or when told to."""

    def __init__(self, *connections: Union[FakeConnection, Exception]) -> None:
        self._connections = list(connections)
        self.urls: List[str] = []

    async def __call__(self, url: str) -> FakeConnection:
        self.urls.append(url)
        if not self._connections:
            raise OSError("no more connections")
        item = self._connections.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    @property
    def next_connection(self) -> Optional[FakeConnection]:
        for item in self._connections:
            if isinstance(item, FakeConnection):
                return item
        return None
