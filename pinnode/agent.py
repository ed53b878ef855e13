"""
Top-level reconnection loop.

    agent = NodeAgent(config, max_concurrent=4)
    await agent.run()          # returns once agent.flag.stop() is called

Each iteration runs one fresh Session to completion, logs why it ended, and waits
``reconnect_delay_secs`` before trying again. Nothing from a finished session is
reused except the run flag, the request counter and the backend adapters.
"""
from __future__ import annotations

import logging
from typing import Optional

from pinnode.backends.registry import BackendRegistry
from pinnode.config import Config
from pinnode.session import (
    HEARTBEAT_INTERVAL_SECONDS,
    Connector,
    Session,
    SessionEnd,
    SessionResult,
    connect_websocket,
)
from pinnode.state import RequestCounter, RunFlag

logger = logging.getLogger(__name__)


class NodeAgent:
    def __init__(
        self,
        config: Config,
        *,
        max_concurrent: int = 1,
        flag: Optional[RunFlag] = None,
        counter: Optional[RequestCounter] = None,
        backends: Optional[BackendRegistry] = None,
        connector: Connector = connect_websocket,
        heartbeat_interval: float = HEARTBEAT_INTERVAL_SECONDS,
    ) -> None:
        self.config = config
        self.max_concurrent = max_concurrent
        self.flag = flag or RunFlag()
        self.counter = counter or RequestCounter()
        self.backends = backends or BackendRegistry()
        self._connector = connector
        self._heartbeat_interval = heartbeat_interval
        self.sessions_started = 0
        self.last_result: Optional[SessionResult] = None

    def new_session(self) -> Session:
        return Session(
            self.config,
            flag=self.flag,
            counter=self.counter,
            backends=self.backends,
            max_concurrent=self.max_concurrent,
            connector=self._connector,
            heartbeat_interval=self._heartbeat_interval,
        )

    async def run(self) -> int:
        """Run sessions until stopped. Returns the total requests served."""
        logger.info("Concurrent inference threads: %d", self.max_concurrent)
        try:
            while self.flag.running:
                self.last_result = await self._run_once()
                if not self.flag.running:
                    break
                logger.info("Reconnecting in %ss...", self.config.reconnect_delay_secs)
                await self.flag.sleep(self.config.reconnect_delay_secs)
        finally:
            await self.backends.aclose()
        logger.info("Shutdown complete. Total requests: %d", self.counter.value)
        return self.counter.value

    async def _run_once(self) -> SessionResult:
        self.sessions_started += 1
        session = self.new_session()
        try:
            result = await session.run()
        except Exception as exc:
            logger.exception("Unexpected session failure")
            return SessionResult(SessionEnd.TRANSPORT_ERROR, f"{type(exc).__name__}: {exc}")

        if result.is_error:
            logger.error("Connection error: %s", result.detail)
        else:
            logger.info("Session ended: %s", result.reason.value)
        return result
