"""
Bounded-concurrency execution of inference work.

Architecture:
    submit() → Task → Semaphore(N) → adapter.chat_completion() → outbound Queue

    submit() never blocks: every work item becomes an asyncio.Task immediately.
    The semaphore caps how many backend calls run at once; tasks beyond the cap
    wait for a slot in submission order. Each task puts exactly one reply
    (INFERENCE_RESPONSE or INFERENCE_ERROR) on the session's outbound queue.

The outbound queue belongs to one session. When the session ends, tasks still in
flight finish into a queue nobody reads and their replies are dropped.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional, Set, Union

from pinnode.backends.base import BackendAdapter
from pinnode.models import InferenceError, InferenceResponse, InferenceWorkItem

logger = logging.getLogger(__name__)

OutboundReply = Union[InferenceResponse, InferenceError]


class Dispatcher:
    """Runs work items against one adapter/endpoint with at most N in flight."""

    def __init__(
        self,
        *,
        max_concurrent: int = 1,
        outbound: Optional[asyncio.Queue] = None,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._max_concurrent = max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self.outbound: asyncio.Queue = outbound if outbound is not None else asyncio.Queue()
        self._tasks: Set[asyncio.Task] = set()

        self._active = 0
        self._completed = 0
        self._failed = 0

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def active(self) -> int:
        """Backend calls currently executing."""
        return self._active

    @property
    def pending(self) -> int:
        """Submitted work items that have not yet produced a reply."""
        return len(self._tasks)

    @property
    def completed(self) -> int:
        return self._completed

    @property
    def failed(self) -> int:
        return self._failed

    def submit(
        self,
        item: InferenceWorkItem,
        adapter: BackendAdapter,
        endpoint: str,
    ) -> asyncio.Task:
        """Schedule a work item and return its task handle without waiting."""
        task = asyncio.create_task(
            self._run(item, adapter, endpoint),
            name=f"inference-{item.request_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(
        self,
        item: InferenceWorkItem,
        adapter: BackendAdapter,
        endpoint: str,
    ) -> None:
        async with self._semaphore:
            self._active += 1
            logger.info("[#%d] Starting inference for %s", item.sequence, item.request_id)
            try:
                reply = await self._execute(item, adapter, endpoint)
            finally:
                self._active -= 1
        await self.outbound.put(reply)
        logger.info("[#%d] Response queued for send", item.sequence)

    async def _execute(
        self,
        item: InferenceWorkItem,
        adapter: BackendAdapter,
        endpoint: str,
    ) -> OutboundReply:
        try:
            completion = await adapter.chat_completion(endpoint, item.model, item.messages)
        except Exception as exc:
            self._failed += 1
            logger.error("[#%d] Failed: %s", item.sequence, exc)
            return InferenceError(request_id=item.request_id, error=str(exc))

        self._completed += 1
        logger.info(
            "[#%d] Completed successfully (%d+%d tokens)",
            item.sequence,
            completion.prompt_tokens,
            completion.completion_tokens,
        )
        return InferenceResponse(request_id=item.request_id, result=completion)

    async def join(self) -> None:
        """Wait for every submitted task. Used by tests and graceful shutdown."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
