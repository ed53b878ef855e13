from __future__ import annotations

import asyncio

import pytest

from pinnode.agent import NodeAgent
from pinnode.backends.registry import BackendRegistry
from pinnode.session import SessionEnd
from pinnode.state import RequestCounter, RunFlag
from tests.backends.fake_backend import FakeAdapter
from tests.factories import make_config, node
from tests.fake_connection import Connector, FakeConnection


def _agent(connector, *, config=None, adapter=None, **kwargs) -> NodeAgent:
    adapter = adapter or FakeAdapter(models={"http://a.local:11434": ["m1"]})
    return NodeAgent(
        config or make_config(),
        backends=BackendRegistry({"ollama": adapter, "openai": adapter}),
        connector=connector,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_reconnects_after_peer_close_with_fresh_session() -> None:
    first, second = FakeConnection(), FakeConnection()
    agent = _agent(Connector(first, second))
    task = asyncio.create_task(agent.run())

    first.feed({"type": "AUTH_SUCCESS", "operator_id": "op", "message": "hi"})
    await first.wait_for("REGISTER_NODE")
    first.close_from_peer()

    await second.wait_for("AUTH")
    second.feed({"type": "AUTH_SUCCESS", "operator_id": "op", "message": "hi"})
    await second.wait_for("REGISTER_NODE")
    agent.flag.stop()
    await asyncio.wait_for(task, timeout=2.0)

    assert agent.sessions_started == 2
    assert second.types() == ["AUTH", "REGISTER_NODE"]
    assert first.closed and second.closed


@pytest.mark.asyncio
async def test_recovers_from_connect_failures_and_server_errors() -> None:
    good = FakeConnection()
    erroring = FakeConnection()
    erroring.feed({"type": "ERROR", "message": "Unknown client"})
    agent = _agent(Connector(OSError("refused"), erroring, good))
    task = asyncio.create_task(agent.run())

    await good.wait_for("AUTH")
    agent.flag.stop()
    await asyncio.wait_for(task, timeout=2.0)

    assert agent.sessions_started == 3
    assert erroring.closed
    assert agent.last_result is not None
    assert agent.last_result.reason is SessionEnd.SHUTDOWN


@pytest.mark.asyncio
async def test_reconnect_delay_is_interrupted_by_shutdown() -> None:
    agent = _agent(Connector(), config=make_config(reconnect_delay_secs=60))
    task = asyncio.create_task(agent.run())

    await asyncio.sleep(0.05)
    agent.flag.stop()
    await asyncio.wait_for(task, timeout=1.0)
    assert agent.sessions_started == 1
    assert agent.last_result.reason is SessionEnd.TRANSPORT_ERROR


@pytest.mark.asyncio
async def test_unexpected_session_exception_does_not_kill_agent() -> None:
    calls = {"count": 0}
    good = FakeConnection()

    async def _connector(url: str):
        calls["count"] += 1
        if calls["count"] == 1:
            raise RuntimeError("bug in transport")
        return good

    agent = _agent(_connector)
    task = asyncio.create_task(agent.run())
    await good.wait_for("AUTH")
    agent.flag.stop()
    await asyncio.wait_for(task, timeout=2.0)
    assert calls["count"] == 2


@pytest.mark.asyncio
async def test_request_counter_spans_sessions() -> None:
    first, second = FakeConnection(), FakeConnection()
    counter = RequestCounter()
    agent = _agent(Connector(first, second), counter=counter)
    task = asyncio.create_task(agent.run())

    request = {
        "type": "INFERENCE_REQUEST",
        "request_id": "r-1",
        "payload": {"model": "m1", "messages": [{"role": "user", "content": "x"}]},
    }
    first.feed(request)
    await first.wait_for("INFERENCE_RESPONSE")
    first.close_from_peer()

    second.feed({**request, "request_id": "r-2"})
    await second.wait_for("INFERENCE_RESPONSE")
    agent.flag.stop()
    total = await asyncio.wait_for(task, timeout=2.0)

    assert total == 2
    assert counter.value == 2


@pytest.mark.asyncio
async def test_each_session_routes_with_its_own_table() -> None:
    agent = _agent(Connector(), config=make_config(nodes=[node("x", "http://x")]))
    first = agent.new_session()
    second = agent.new_session()
    assert first.router.endpoints == second.router.endpoints == {"x": ("http://x", "ollama")}
    assert first.router.endpoints is not second.router.endpoints
    assert first.outbound is not second.outbound


@pytest.mark.asyncio
async def test_stopped_flag_means_no_session() -> None:
    flag = RunFlag()
    flag.stop()
    connector = Connector(FakeConnection())
    adapter = FakeAdapter()
    agent = _agent(connector, flag=flag, adapter=adapter)
    assert await agent.run() == 0
    assert connector.urls == []
    assert adapter.closed


@pytest.mark.asyncio
async def test_run_flag_sleep() -> None:
    flag = RunFlag()
    assert await flag.sleep(0.01) is True
    loop = asyncio.get_running_loop()
    loop.call_later(0.01, flag.stop)
    assert await flag.sleep(5) is False
    assert not flag.running
