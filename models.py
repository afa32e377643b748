from dataclasses import dataclass, field
from datetime import datetime
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional

from errors import ErrorKind

Role = Literal["system", "user", "assistant", "tool"]


class ChatRequest(BaseModel):
    query: Optional[str] = Field(None, description="User message")


class ChatResponse(BaseModel):
    action: str = "response"
    body: str
    data: Optional[Any] = None


class StatusResponse(BaseModel):
    status: bool
    body: str


class SaveMessageRequest(BaseModel):
    message: Optional[str] = None
    role: Optional[Literal["user", "assistant"]] = None


class StoredMessage(BaseModel):
    id: Optional[int] = None
    UserId: str
    message: str
    role: str
    timestamp: datetime


@dataclass(frozen=True)
class Message:
    role: Role
    content: str
    tool_name: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_arguments: Optional[str] = None

    @staticmethod
    def system(content: str) -> "Message":
        return Message(role="system", content=content)

    @staticmethod
    def user(content: str) -> "Message":
        return Message(role="user", content=content)

    @staticmethod
    def assistant(content: str) -> "Message":
        return Message(role="assistant", content=content)


@dataclass(frozen=True)
class ToolCallRequest:
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PendingConfirmation:
    candidate_action: ToolCallRequest
    match_score: float
    candidate: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResult:
    data: Any = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    pending_confirmation: Optional[PendingConfirmation] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.pending_confirmation is None

    @staticmethod
    def success(data: Any) -> "ToolResult":
        return ToolResult(data=data)

    @staticmethod
    def failure(kind: ErrorKind, error: str, data: Any = None) -> "ToolResult":
        return ToolResult(data=data, error=error, error_kind=kind)

    @staticmethod
    def confirm(pending: PendingConfirmation) -> "ToolResult":
        return ToolResult(data={"requiresConfirmation": True, **pending.candidate}, pending_confirmation=pending)

    def to_payload(self) -> Dict[str, Any]:
        """JSON-typed view handed back to the model as the tool message content."""
        if self.error is not None:
            payload: Dict[str, Any] = {"error": self.error, "errorKind": self.error_kind.value if self.error_kind else None}
            if isinstance(self.data, dict):
                payload.update({k: v for k, v in self.data.items() if k not in payload})
            return payload
        if isinstance(self.data, dict):
            return self.data
        return {"result": self.data}


@dataclass(frozen=True)
class GuardrailVerdict:
    allowed: bool
    reason: Optional[str] = None

    @staticmethod
    def allow() -> "GuardrailVerdict":
        return GuardrailVerdict(allowed=True)

    @staticmethod
    def deny(reason: str) -> "GuardrailVerdict":
        return GuardrailVerdict(allowed=False, reason=reason)


@dataclass(frozen=True)
class ModelToolCall:
    id: str
    name: str
    arguments: str  # JSON text exactly as produced by the model


@dataclass
class ModelReply:
    content: Optional[str] = None
    tool_calls: List[ModelToolCall] = field(default_factory=list)

    @property
    def wants_tool(self) -> bool:
        return bool(self.tool_calls)
