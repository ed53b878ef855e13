from __future__ import annotations

from typing import List, Sequence

from pinnode.models import ChatCompletion, ChatMessage


class BackendAdapter:
    """
    Capability contract for a local model server family.

    Adapters are stateless with respect to endpoints: one instance serves every
    node of its family, and the endpoint is passed per call. Failures of any kind
    are raised as BackendError.
    """

    name = "base"

    async def list_models(self, endpoint: str) -> List[str]:
        raise NotImplementedError

    async def chat_completion(
        self,
        endpoint: str,
        model: str,
        messages: Sequence[ChatMessage],
    ) -> ChatCompletion:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


def join_url(endpoint: str, path: str) -> str:
    return f"{endpoint.rstrip('/')}{path}"
