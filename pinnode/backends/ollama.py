"""Adapter for servers speaking the Ollama HTTP API (/api/tags, /api/chat)."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx
from pydantic import ValidationError

from pinnode.backends.base import BackendAdapter, join_url
from pinnode.exceptions import BackendError
from pinnode.models import ChatCompletion, ChatMessage, Choice, Usage, WireModel

logger = logging.getLogger(__name__)

LIST_TIMEOUT_SECONDS = 10.0
CHAT_TIMEOUT_SECONDS = 120.0


class _OllamaModel(WireModel):
    name: str


class _OllamaTags(WireModel):
    models: List[_OllamaModel]


class _OllamaChatResponse(WireModel):
    model: str
    message: ChatMessage
    done: bool = True
    prompt_eval_count: Optional[int] = None
    eval_count: Optional[int] = None


class OllamaAdapter(BackendAdapter):
    name = "ollama"

    def __init__(self, *, client: Optional[httpx.AsyncClient] = None) -> None:
        self._client = client
        self._owns_client = client is None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def list_models(self, endpoint: str) -> List[str]:
        url = join_url(endpoint, "/api/tags")
        try:
            response = await self._http().get(url, timeout=LIST_TIMEOUT_SECONDS)
        except httpx.HTTPError as exc:
            raise BackendError(
                f"Failed to connect to Ollama: {exc}", backend=self.name
            ) from exc
        try:
            tags = _OllamaTags.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise BackendError(
                f"Failed to parse response: {exc}",
                backend=self.name,
                status_code=response.status_code,
            ) from exc
        return [model.name for model in tags.models]

    async def chat_completion(
        self,
        endpoint: str,
        model: str,
        messages: Sequence[ChatMessage],
    ) -> ChatCompletion:
        url = join_url(endpoint, "/api/chat")
        body: Dict[str, Any] = {
            "model": model,
            "messages": [m.model_dump() for m in messages],
            "stream": False,
        }
        try:
            response = await self._http().post(url, json=body, timeout=CHAT_TIMEOUT_SECONDS)
        except httpx.HTTPError as exc:
            raise BackendError(f"Ollama request failed: {exc}", backend=self.name) from exc

        if not response.is_success:
            raise BackendError(
                f"Ollama error {response.status_code}: {response.text}",
                backend=self.name,
                status_code=response.status_code,
            )

        try:
            data = _OllamaChatResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise BackendError(
                f"Failed to parse Ollama response: {exc}", backend=self.name
            ) from exc

        prompt_tokens = data.prompt_eval_count or 0
        completion_tokens = data.eval_count or 0
        return ChatCompletion(
            model=data.model,
            choices=[Choice(index=0, message=data.message, finish_reason="stop")],
            usage=Usage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
        )

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
