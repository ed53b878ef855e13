from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from pinnode.backends.base import BackendAdapter
from pinnode.backends.ollama import OllamaAdapter
from pinnode.backends.openai_compat import OpenAICompatAdapter

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[], BackendAdapter]

OPENAI_MODE = "openai"
OLLAMA_MODE = "ollama"

ADAPTERS: Dict[str, AdapterFactory] = {
    OPENAI_MODE: OpenAICompatAdapter,
    OLLAMA_MODE: OllamaAdapter,
}


def resolve_family(api_mode: str) -> str:
    """Only "openai" is special; every other apiMode speaks the Ollama API."""
    return OPENAI_MODE if api_mode == OPENAI_MODE else OLLAMA_MODE


class BackendRegistry:
    """
    Lazily built adapter per backend family, shared by every session.

    Tests pass a mapping of ready-made adapters to bypass the network.
    """

    def __init__(self, adapters: Optional[Dict[str, BackendAdapter]] = None) -> None:
        self._adapters: Dict[str, BackendAdapter] = dict(adapters or {})

    def get(self, api_mode: str) -> BackendAdapter:
        family = resolve_family(api_mode)
        adapter = self._adapters.get(family)
        if adapter is None:
            adapter = ADAPTERS[family]()
            self._adapters[family] = adapter
            logger.debug("Created %s backend adapter", family)
        return adapter

    async def aclose(self) -> None:
        adapters, self._adapters = self._adapters, {}
        for adapter in adapters.values():
            await adapter.aclose()
