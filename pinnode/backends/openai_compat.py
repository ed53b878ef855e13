"""
Adapter for OpenAI-compatible servers (vLLM, llama.cpp server, LM Studio, ...).

Uses the official SDK pointed at ``{endpoint}/v1``. One AsyncOpenAI client is kept
per endpoint so concurrent dispatches to the same node share a connection pool.
"""
from __future__ import annotations

import logging
import os
from typing import Dict, List, Optional, Sequence

import httpx
from openai import APIError, APIStatusError, AsyncOpenAI

from pinnode.backends.base import BackendAdapter, join_url
from pinnode.exceptions import BackendError
from pinnode.models import ChatCompletion, ChatMessage, Choice, Usage

logger = logging.getLogger(__name__)

LIST_TIMEOUT_SECONDS = 10.0
CHAT_TIMEOUT_SECONDS = 120.0
# Local servers accept any bearer token; the SDK refuses to start without one.
PLACEHOLDER_API_KEY = "not-needed"


class OpenAICompatAdapter(BackendAdapter):
    name = "openai"

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_key = api_key or os.getenv("PIN_OPENAI_API_KEY") or PLACEHOLDER_API_KEY
        self._http_client = http_client
        self._clients: Dict[str, AsyncOpenAI] = {}

    def _client(self, endpoint: str) -> AsyncOpenAI:
        base_url = join_url(endpoint, "/v1")
        client = self._clients.get(base_url)
        if client is None:
            client = AsyncOpenAI(
                api_key=self._api_key,
                base_url=base_url,
                max_retries=0,
                http_client=self._http_client,
            )
            self._clients[base_url] = client
        return client

    async def list_models(self, endpoint: str) -> List[str]:
        try:
            page = await self._client(endpoint).models.list(timeout=LIST_TIMEOUT_SECONDS)
        except APIError as exc:
            raise BackendError(
                f"Failed to connect to OpenAI-compatible API: {exc}", backend=self.name
            ) from exc
        return [model.id for model in page.data]

    async def chat_completion(
        self,
        endpoint: str,
        model: str,
        messages: Sequence[ChatMessage],
    ) -> ChatCompletion:
        try:
            response = await self._client(endpoint).chat.completions.create(
                model=model,
                messages=[m.model_dump() for m in messages],  # type: ignore[misc]
                stream=False,
                timeout=CHAT_TIMEOUT_SECONDS,
            )
        except APIStatusError as exc:
            raise BackendError(
                f"OpenAI error {exc.status_code}: {exc.message}",
                backend=self.name,
                status_code=exc.status_code,
            ) from exc
        except APIError as exc:
            raise BackendError(f"OpenAI request failed: {exc}", backend=self.name) from exc

        usage = None
        if response.usage is not None:
            usage = Usage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )
        return ChatCompletion(
            model=response.model,
            choices=[
                Choice(
                    index=choice.index,
                    message=ChatMessage(
                        role=choice.message.role,
                        content=choice.message.content or "",
                    ),
                    finish_reason=choice.finish_reason,
                )
                for choice in response.choices
            ],
            usage=usage,
        )

    async def aclose(self) -> None:
        clients, self._clients = self._clients, {}
        # An injected http_client belongs to the caller.
        if self._http_client is not None:
            return
        for client in clients.values():
            await client.close()
