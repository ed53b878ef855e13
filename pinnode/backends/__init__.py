from pinnode.backends.base import BackendAdapter
from pinnode.backends.ollama import OllamaAdapter
from pinnode.backends.openai_compat import OpenAICompatAdapter
from pinnode.backends.registry import BackendRegistry, resolve_family

__all__ = [
    "BackendAdapter",
    "OllamaAdapter",
    "OpenAICompatAdapter",
    "BackendRegistry",
    "resolve_family",
]
