"""
Sequential benchmark ("interview") execution.

The coordination service grades a node by sending an ordered list of prompts.
Prompts run one at a time, in order, and a failing prompt never aborts the rest.

Time to first token is not measured: responses are not streamed, so ``ttft_ms``
is reported as half of the total latency. Treat it as an approximation.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, List

from pinnode.backends.base import BackendAdapter
from pinnode.models import (
    ChatMessage,
    InterviewPrompt,
    InterviewResult,
    InterviewScript,
    PromptResult,
)

logger = logging.getLogger(__name__)


class InterviewExecutor:
    def __init__(self, *, clock: Callable[[], float] = time.perf_counter) -> None:
        self._clock = clock

    async def run(
        self,
        adapter: BackendAdapter,
        endpoint: str,
        script: InterviewScript,
    ) -> InterviewResult:
        prompts = script.prompts
        logger.info(
            "[INTERVIEW] Starting interview %s for %s with %d prompts on model %s (%s)",
            script.interview_id,
            script.alias or "operator",
            len(prompts),
            script.model,
            adapter.name,
        )

        results: List[PromptResult] = []
        for i, prompt in enumerate(prompts, start=1):
            logger.info("[INTERVIEW] Running prompt %d/%d: %s", i, len(prompts), prompt.id)
            result = await self.run_prompt(adapter, endpoint, script.model, prompt)
            if result.error is not None:
                logger.warning("[INTERVIEW] Prompt %s failed: %s", prompt.id, result.error)
            else:
                logger.info(
                    "[INTERVIEW] Prompt %s completed: %d tokens in %dms",
                    prompt.id,
                    result.tokens_generated,
                    result.total_ms,
                )
            results.append(result)

        logger.info(
            "[INTERVIEW] Interview %s complete with %d results",
            script.interview_id,
            len(results),
        )
        return InterviewResult(
            interview_id=script.interview_id,
            model=script.model,
            results=results,
        )

    async def run_prompt(
        self,
        adapter: BackendAdapter,
        endpoint: str,
        model: str,
        prompt: InterviewPrompt,
    ) -> PromptResult:
        messages = [ChatMessage(role="user", content=prompt.prompt)]
        start = self._clock()
        try:
            completion = await adapter.chat_completion(endpoint, model, messages)
        except Exception as exc:
            return PromptResult(
                prompt_id=prompt.id,
                response="",
                ttft_ms=0,
                total_ms=self._elapsed_ms(start),
                tokens_generated=0,
                error=str(exc),
            )

        total_ms = self._elapsed_ms(start)
        return PromptResult(
            prompt_id=prompt.id,
            response=completion.output_text,
            ttft_ms=total_ms // 2,
            total_ms=total_ms,
            tokens_generated=completion.completion_tokens,
        )

    def _elapsed_ms(self, start: float) -> int:
        return int((self._clock() - start) * 1000)
