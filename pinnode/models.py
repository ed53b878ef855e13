from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_serializer


class WireModel(BaseModel):
    """Base for every JSON frame exchanged with the coordination service."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# =============================================================================
# Shared payloads
# =============================================================================


class ChatMessage(WireModel):
    role: str
    content: str


class InferencePayload(WireModel):
    model: str
    messages: List[ChatMessage]
    # Accepted for compatibility; replies are never streamed.
    stream: bool = False


class InterviewPrompt(WireModel):
    id: str
    prompt: str
    max_tokens: int


class Choice(WireModel):
    index: int = 0
    message: ChatMessage
    finish_reason: Optional[str] = None


class Usage(WireModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletion(WireModel):
    """
    Normalized chat completion returned by every backend adapter.

    Both backend families are mapped onto the OpenAI chat completion shape;
    this is what gets forwarded as the INFERENCE_RESPONSE result.
    """

    model: str = ""
    choices: List[Choice] = Field(default_factory=list)
    usage: Optional[Usage] = None

    @property
    def output_text(self) -> str:
        if not self.choices:
            return ""
        return self.choices[0].message.content

    @property
    def prompt_tokens(self) -> int:
        return self.usage.prompt_tokens if self.usage else 0

    @property
    def completion_tokens(self) -> int:
        return self.usage.completion_tokens if self.usage else 0


# =============================================================================
# Inbound (service -> client)
# =============================================================================


class AuthSuccess(WireModel):
    type: Literal["AUTH_SUCCESS"] = "AUTH_SUCCESS"
    operator_id: str
    node_id: Optional[str] = None
    message: str


class ServerError(WireModel):
    type: Literal["ERROR"] = "ERROR"
    message: str


class Ping(WireModel):
    type: Literal["PING"] = "PING"


class HeartbeatAck(WireModel):
    type: Literal["HEARTBEAT_ACK"] = "HEARTBEAT_ACK"


class ModelListAck(WireModel):
    type: Literal["MODEL_LIST_ACK"] = "MODEL_LIST_ACK"


class RegisterNodeAck(WireModel):
    type: Literal["REGISTER_NODE_ACK"] = "REGISTER_NODE_ACK"
    node_id: str
    alias: str
    models: List[str]
    created: bool
    message: str


class UpdateWalletAck(WireModel):
    type: Literal["UPDATE_WALLET_ACK"] = "UPDATE_WALLET_ACK"
    success: bool
    message: str


class InferenceRequest(WireModel):
    type: Literal["INFERENCE_REQUEST"] = "INFERENCE_REQUEST"
    request_id: str
    payload: InferencePayload


class InterviewRequest(WireModel):
    type: Literal["INTERVIEW_REQUEST"] = "INTERVIEW_REQUEST"
    interview_id: str
    node_id: Optional[str] = None
    model: str
    prompts: List[InterviewPrompt]
    # Accepted but not enforced; each prompt is bounded by the adapter timeout.
    timeout_ms: int


class InterviewComplete(WireModel):
    type: Literal["INTERVIEW_COMPLETE"] = "INTERVIEW_COMPLETE"
    interview_id: str
    node_id: Optional[str] = None
    tier: str
    accuracy: float
    tokens_per_sec: float
    reason: str


# =============================================================================
# Outbound (client -> service)
# =============================================================================


class Auth(WireModel):
    type: Literal["AUTH"] = "AUTH"
    client_id: str
    timestamp: str
    signature: str


class Pong(WireModel):
    type: Literal["PONG"] = "PONG"


class Heartbeat(WireModel):
    type: Literal["HEARTBEAT"] = "HEARTBEAT"


class UpdateWallet(WireModel):
    type: Literal["UPDATE_WALLET"] = "UPDATE_WALLET"
    payout_address: str


class RegisterNode(WireModel):
    type: Literal["REGISTER_NODE"] = "REGISTER_NODE"
    alias: str
    models: List[str]
    capacity: int
    region: str
    price_per_thousand_tokens: float = Field(alias="pricePerThousandTokens")


class InferenceResponse(WireModel):
    type: Literal["INFERENCE_RESPONSE"] = "INFERENCE_RESPONSE"
    request_id: str
    result: ChatCompletion


class InferenceError(WireModel):
    type: Literal["INFERENCE_ERROR"] = "INFERENCE_ERROR"
    request_id: str
    error: str


class PromptResult(WireModel):
    prompt_id: str
    response: str
    ttft_ms: int
    total_ms: int
    tokens_generated: int
    error: Optional[str] = None

    @model_serializer(mode="wrap")
    def _drop_missing_error(self, handler: Any) -> Dict[str, Any]:
        data = handler(self)
        if data.get("error") is None:
            data.pop("error", None)
        return data


class InterviewResult(WireModel):
    type: Literal["INTERVIEW_RESULT"] = "INTERVIEW_RESULT"
    interview_id: str
    model: str
    results: List[PromptResult] = Field(default_factory=list)


# =============================================================================
# Internal work items
# =============================================================================


@dataclass
class InferenceWorkItem:
    """One inference call handed to the dispatcher."""

    request_id: str
    model: str
    messages: List[ChatMessage]
    # Position in the process-wide request counter, for log correlation.
    sequence: int = 0


@dataclass
class InterviewScript:
    """Ordered benchmark prompts for one node."""

    interview_id: str
    model: str
    prompts: List[InterviewPrompt] = field(default_factory=list)
    alias: Optional[str] = None
