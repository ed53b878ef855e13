"""
Inbound message routing.

Each decoded ServerMessage is handed to exactly one handler. Handlers return the
replies to write right away (possibly none); inference work is handed to the
Dispatcher and answered later through the session's outbound queue.

    AUTH_SUCCESS          -> [UPDATE_WALLET], REGISTER_NODE per configured node
    PING                  -> PONG
    INTERVIEW_REQUEST     -> INTERVIEW_RESULT (runs inline, blocks routing)
    INFERENCE_REQUEST     -> (dispatched, no immediate reply)
    ERROR                 -> raises PeerError
    everything else       -> logged
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from pinnode.backends.registry import BackendRegistry
from pinnode.config import Config, NodeConfig
from pinnode.dispatcher import Dispatcher
from pinnode.exceptions import PeerError
from pinnode.interview import InterviewExecutor
from pinnode.models import (
    AuthSuccess,
    HeartbeatAck,
    InferenceRequest,
    InferenceWorkItem,
    InterviewComplete,
    InterviewRequest,
    InterviewScript,
    ModelListAck,
    Ping,
    Pong,
    RegisterNode,
    RegisterNodeAck,
    ServerError,
    UpdateWallet,
    UpdateWalletAck,
    WireModel,
)
from pinnode.state import RequestCounter

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[List[WireModel]]]

DEFAULT_NODE_LABEL = "operator"
FAILED_TIER = "failed"


def mask_address(address: str) -> str:
    """First 6 and last 4 characters, for logs."""
    return f"{address[:6]}...{address[-4:]}"


class ProtocolRouter:
    """Per-session handler set. Builds its endpoint table from the config it is given."""

    def __init__(
        self,
        config: Config,
        *,
        backends: BackendRegistry,
        dispatcher: Dispatcher,
        counter: RequestCounter,
        interviews: Optional[InterviewExecutor] = None,
    ) -> None:
        self._config = config
        self._backends = backends
        self._dispatcher = dispatcher
        self._counter = counter
        self._interviews = interviews or InterviewExecutor()
        self.endpoints: Dict[str, Tuple[str, str]] = config.endpoint_table()
        self._handlers: Dict[type, Handler] = {
            AuthSuccess: self._on_auth_success,
            ServerError: self._on_error,
            Ping: self._on_ping,
            HeartbeatAck: self._on_ack,
            ModelListAck: self._on_ack,
            RegisterNodeAck: self._on_register_ack,
            UpdateWalletAck: self._on_wallet_ack,
            InferenceRequest: self._on_inference_request,
            InterviewRequest: self._on_interview_request,
            InterviewComplete: self._on_interview_complete,
        }

    async def handle(self, message: WireModel) -> List[WireModel]:
        handler = self._handlers.get(type(message))
        if handler is None:
            raise TypeError(f"No handler for {type(message).__name__}")
        return await handler(message)

    def resolve(self, alias: Optional[str]) -> Tuple[str, str]:
        """(endpoint, api_mode) for an alias, falling back to the first node."""
        if alias is not None and alias in self.endpoints:
            return self.endpoints[alias]
        first = self._config.first_node
        return first.inference_uri, first.api_mode

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _on_auth_success(self, message: AuthSuccess) -> List[WireModel]:
        logger.info("Authenticated! Operator: %s", message.operator_id)
        logger.info("%s", message.message)

        replies: List[WireModel] = []
        payout = self._config.payout_address
        if payout:
            logger.info("Updating payout wallet: %s", mask_address(payout))
            replies.append(UpdateWallet(payout_address=payout))

        for node in self._config.nodes:
            replies.append(await self._registration(node))

        logger.info("Registered %d node(s) with PIN network", len(self._config.nodes))
        return replies

    async def _registration(self, node: NodeConfig) -> RegisterNode:
        logger.info(
            "Registering node: %s (region: %s, capacity: %d, endpoint: %s, mode: %s)",
            node.alias,
            node.region,
            node.capacity,
            node.inference_uri,
            node.api_mode,
        )
        adapter = self._backends.get(node.api_mode)
        try:
            models = await adapter.list_models(node.inference_uri)
        except Exception as exc:
            logger.error(
                "Failed to get models for %s (%s): %s", node.alias, node.api_mode, exc
            )
            models = []

        if not models:
            logger.warning(
                "No models found for node %s - check endpoint %s",
                node.alias,
                node.inference_uri,
            )
        else:
            logger.info("Node %s has %d models: %s", node.alias, len(models), models)

        return RegisterNode(
            alias=node.alias,
            models=models,
            capacity=node.capacity,
            region=node.region,
            price_per_thousand_tokens=node.price_per_thousand_tokens,
        )

    async def _on_error(self, message: ServerError) -> List[WireModel]:
        logger.error("Server error: %s", message.message)
        raise PeerError(message.message)

    async def _on_ping(self, message: Ping) -> List[WireModel]:
        return [Pong()]

    async def _on_ack(self, message: WireModel) -> List[WireModel]:
        return []

    async def _on_register_ack(self, message: RegisterNodeAck) -> List[WireModel]:
        status = "registered" if message.created else "updated"
        logger.info(
            "[NODE] %s %s (ID: %s) with %d models",
            status.upper(),
            message.alias,
            message.node_id,
            len(message.models),
        )
        logger.info("[NODE] %s", message.message)
        return []

    async def _on_wallet_ack(self, message: UpdateWalletAck) -> List[WireModel]:
        if message.success:
            logger.info("[WALLET] %s", message.message)
        else:
            logger.warning("[WALLET] Failed: %s", message.message)
        return []

    async def _on_interview_request(self, message: InterviewRequest) -> List[WireModel]:
        label = message.node_id or DEFAULT_NODE_LABEL
        logger.info(
            "[INTERVIEW] Received interview for %s - model %s (%d prompts)",
            label,
            message.model,
            len(message.prompts),
        )
        endpoint, api_mode = self.resolve(message.node_id)
        script = InterviewScript(
            interview_id=message.interview_id,
            model=message.model,
            prompts=list(message.prompts),
            alias=message.node_id,
        )
        result = await self._interviews.run(self._backends.get(api_mode), endpoint, script)
        return [result]

    async def _on_interview_complete(self, message: InterviewComplete) -> List[WireModel]:
        label = message.node_id or DEFAULT_NODE_LABEL
        logger.info("=====================================")
        logger.info("[INTERVIEW] Quality Tier Assigned for %s!", label)
        logger.info("  Tier: %s", message.tier.upper())
        logger.info("  Accuracy: %.1f%%", message.accuracy)
        logger.info("  Speed: %.1f tokens/sec", message.tokens_per_sec)
        logger.info("  Reason: %s", message.reason)
        logger.info("=====================================")
        if message.tier == FAILED_TIER:
            logger.error("Node %s failed quality check - connection will be closed", label)
        return []

    async def _on_inference_request(self, message: InferenceRequest) -> List[WireModel]:
        sequence = self._counter.increment()
        # Inference always goes to the first node; only interviews honor aliases.
        first = self._config.first_node
        item = InferenceWorkItem(
            request_id=message.request_id,
            model=message.payload.model,
            messages=list(message.payload.messages),
            sequence=sequence,
        )
        logger.info(
            "[#%d] Inference request: %s (%s) via %s [queued]",
            sequence,
            item.request_id,
            item.model,
            first.api_mode,
        )
        self._dispatcher.submit(item, self._backends.get(first.api_mode), first.inference_uri)
        return []
