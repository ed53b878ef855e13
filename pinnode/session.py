"""
One connection attempt to the coordination service.

Lifecycle:
    CONNECTING → AUTHENTICATING → STEADY → TERMINATING → CLOSED

STEADY is a single loop that waits on three sources at once and serves whichever
is ready first:

    outbound queue   dispatcher replies        → write
    connection       inbound frame             → decode → router → write replies
    heartbeat timer  every HEARTBEAT_INTERVAL  → write HEARTBEAT

The pending read and queue get survive across iterations, so a busy source cannot
starve the others. The heartbeat runs on a fixed schedule and is not postponed by
other traffic. Only this coroutine ever writes to the connection.

A session never outlives its connection: the endpoint table, dispatcher and
outbound queue are built fresh for each attempt and dropped with it.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol, Union

from websockets.asyncio.client import connect as websocket_connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

from pinnode.backends.registry import BackendRegistry
from pinnode.config import Config
from pinnode.dispatcher import Dispatcher
from pinnode.exceptions import PeerError, ProtocolError, TransportError
from pinnode.interview import InterviewExecutor
from pinnode.models import Auth, Heartbeat, WireModel
from pinnode.protocol import decode_server_message, encode_message
from pinnode.router import ProtocolRouter
from pinnode.signature import current_timestamp, sign
from pinnode.state import RequestCounter, RunFlag

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL_SECONDS = 30.0
CONNECT_TIMEOUT_SECONDS = 30.0


class Connection(Protocol):
    """The subset of a websockets client connection the session uses."""

    async def send(self, message: str) -> None: ...

    async def recv(self) -> Union[str, bytes]: ...

    async def close(self) -> None: ...


Connector = Callable[[str], Awaitable[Connection]]


async def connect_websocket(url: str) -> Connection:
    return await websocket_connect(url, open_timeout=CONNECT_TIMEOUT_SECONDS, max_size=None)


class SessionState(str, Enum):
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    STEADY = "steady"
    TERMINATING = "terminating"
    CLOSED = "closed"


class SessionEnd(str, Enum):
    """Why a session handed control back to the reconnection loop."""

    SHUTDOWN = "shutdown"
    PEER_CLOSED = "peer_closed"
    TRANSPORT_ERROR = "transport_error"
    PEER_ERROR = "peer_error"


@dataclass
class SessionResult:
    reason: SessionEnd
    detail: str = ""

    @property
    def is_error(self) -> bool:
        return self.reason in (SessionEnd.TRANSPORT_ERROR, SessionEnd.PEER_ERROR)


class Session:
    def __init__(
        self,
        config: Config,
        *,
        flag: RunFlag,
        counter: RequestCounter,
        backends: BackendRegistry,
        max_concurrent: int = 1,
        connector: Connector = connect_websocket,
        heartbeat_interval: float = HEARTBEAT_INTERVAL_SECONDS,
        interviews: Optional[InterviewExecutor] = None,
    ) -> None:
        self._config = config
        self._flag = flag
        self._connector = connector
        self._heartbeat_interval = heartbeat_interval
        self.state = SessionState.CONNECTING

        self.outbound: asyncio.Queue = asyncio.Queue()
        self.dispatcher = Dispatcher(max_concurrent=max_concurrent, outbound=self.outbound)
        self.router = ProtocolRouter(
            config,
            backends=backends,
            dispatcher=self.dispatcher,
            counter=counter,
            interviews=interviews,
        )

    async def run(self) -> SessionResult:
        logger.info("Connecting to PIN server: %s", self._config.server_url)
        logger.info("Inference threads: %d", self.dispatcher.max_concurrent)
        self.state = SessionState.CONNECTING
        try:
            conn = await self._connector(self._config.server_url)
        except (WebSocketException, OSError, asyncio.TimeoutError) as exc:
            self.state = SessionState.CLOSED
            return SessionResult(SessionEnd.TRANSPORT_ERROR, f"connect failed: {exc}")

        try:
            self.state = SessionState.AUTHENTICATING
            await self._authenticate(conn)
            self.state = SessionState.STEADY
            return await self._steady_state(conn)
        except PeerError as exc:
            return SessionResult(SessionEnd.PEER_ERROR, exc.message)
        except TransportError as exc:
            return SessionResult(SessionEnd.TRANSPORT_ERROR, exc.message)
        finally:
            self.state = SessionState.TERMINATING
            await self._close(conn)
            self.state = SessionState.CLOSED

    async def _authenticate(self, conn: Connection) -> None:
        timestamp = current_timestamp()
        auth = Auth(
            client_id=self._config.client_id,
            timestamp=timestamp,
            signature=sign(self._config.client_id, timestamp, self._config.api_secret),
        )
        await self._send(conn, auth)
        logger.info("Sent AUTH message for %s", self._config.client_id)

    async def _steady_state(self, conn: Connection) -> SessionResult:
        loop = asyncio.get_running_loop()
        next_heartbeat = loop.time() + self._heartbeat_interval
        read_task: Optional[asyncio.Task] = None
        out_task: Optional[asyncio.Task] = None
        stop_task = asyncio.ensure_future(self._flag.wait_stopped())

        try:
            while self._flag.running:
                if read_task is None:
                    read_task = asyncio.ensure_future(conn.recv())
                if out_task is None:
                    out_task = asyncio.ensure_future(self.outbound.get())

                timeout = max(0.0, next_heartbeat - loop.time())
                done, _ = await asyncio.wait(
                    {read_task, out_task, stop_task},
                    timeout=timeout,
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if out_task in done:
                    reply = out_task.result()
                    out_task = None
                    await self._send(conn, reply)

                if read_task in done:
                    finished, read_task = read_task, None
                    try:
                        frame = finished.result()
                    except ConnectionClosedOK:
                        logger.info("Server closed connection")
                        return SessionResult(SessionEnd.PEER_CLOSED, "closed by server")
                    except ConnectionClosed as exc:
                        logger.error("WebSocket error: %s", exc)
                        return SessionResult(SessionEnd.TRANSPORT_ERROR, str(exc))
                    except (WebSocketException, OSError) as exc:
                        logger.error("WebSocket error: %s", exc)
                        return SessionResult(SessionEnd.TRANSPORT_ERROR, str(exc))
                    await self._dispatch_frame(conn, frame)

                if loop.time() >= next_heartbeat:
                    await self._send(conn, Heartbeat())
                    next_heartbeat = loop.time() + self._heartbeat_interval

            return SessionResult(SessionEnd.SHUTDOWN, "run flag cleared")
        finally:
            for task in (read_task, out_task, stop_task):
                if task is not None and not task.done():
                    task.cancel()

    async def _dispatch_frame(self, conn: Connection, frame: Union[str, bytes]) -> None:
        if isinstance(frame, bytes):
            logger.debug("Ignoring binary frame (%d bytes)", len(frame))
            return
        try:
            message = decode_server_message(frame)
        except ProtocolError as exc:
            logger.warning("Failed to parse server message: %s - %s", exc.message, frame)
            return
        for reply in await self.router.handle(message):
            await self._send(conn, reply)

    async def _send(self, conn: Connection, message: WireModel) -> None:
        try:
            await conn.send(encode_message(message))
        except (WebSocketException, OSError) as exc:
            logger.error("Failed to send %s: %s", message.type, exc)  # type: ignore[attr-defined]
            raise TransportError(f"send failed: {exc}") from exc

    async def _close(self, conn: Connection) -> None:
        try:
            await conn.close()
        except (WebSocketException, OSError) as exc:
            logger.debug("Error while closing connection: %s", exc)
