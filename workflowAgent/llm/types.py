"""Typed values exchanged with language models, tools and progress listeners."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    AsyncIterator,
    Dict,
    List,
    Literal,
    Optional,
    Protocol,
    Union,
)

from langchain_core.messages import AIMessage, BaseMessage
from mcp.types import ImageContent, TextContent
from pydantic import BaseModel, Field

from workflowAgent.core.cancellation import CancellationToken

if TYPE_CHECKING:
    from workflowAgent.core.workflow import Workflow


# ========== Stream chunks ==========


@dataclass(frozen=True, slots=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True, slots=True)
class TextStart:
    id: str
    type: Literal["text-start"] = "text-start"


@dataclass(frozen=True, slots=True)
class TextDelta:
    id: str
    delta: str
    type: Literal["text-delta"] = "text-delta"


@dataclass(frozen=True, slots=True)
class TextEnd:
    id: str
    type: Literal["text-end"] = "text-end"


@dataclass(frozen=True, slots=True)
class ReasoningStart:
    id: str
    type: Literal["reasoning-start"] = "reasoning-start"


@dataclass(frozen=True, slots=True)
class ReasoningDelta:
    id: str
    delta: str
    type: Literal["reasoning-delta"] = "reasoning-delta"


@dataclass(frozen=True, slots=True)
class ReasoningEnd:
    id: str
    type: Literal["reasoning-end"] = "reasoning-end"


@dataclass(frozen=True, slots=True)
class ToolInputStart:
    id: str
    tool_name: str
    type: Literal["tool-input-start"] = "tool-input-start"


@dataclass(frozen=True, slots=True)
class ToolInputDelta:
    id: str
    delta: str
    type: Literal["tool-input-delta"] = "tool-input-delta"


@dataclass(frozen=True, slots=True)
class ToolCallChunk:
    """A complete tool call; ``input`` is the raw JSON argument text."""

    tool_call_id: str
    tool_name: str
    input: str = "{}"
    type: Literal["tool-call"] = "tool-call"


@dataclass(frozen=True, slots=True)
class FileChunk:
    media_type: str
    data: str  # base64
    type: Literal["file"] = "file"


@dataclass(frozen=True, slots=True)
class ErrorChunk:
    error: Any
    type: Literal["error"] = "error"


@dataclass(frozen=True, slots=True)
class FinishChunk:
    finish_reason: str = "stop"  # stop | length | tool-calls | content-filter | error | other
    usage: TokenUsage = field(default_factory=TokenUsage)
    type: Literal["finish"] = "finish"


StreamChunk = Union[
    TextStart,
    TextDelta,
    TextEnd,
    ReasoningStart,
    ReasoningDelta,
    ReasoningEnd,
    ToolInputStart,
    ToolInputDelta,
    ToolCallChunk,
    FileChunk,
    ErrorChunk,
    FinishChunk,
]


# ========== Requests ==========


@dataclass
class LLMRequest:
    """One language-model request.

    ``tools`` holds OpenAI-style function schemas. ``tool_choice`` names the
    tool the model is forced to call, or is None for free choice.
    """

    messages: List[BaseMessage]
    tools: List[Dict[str, Any]] = field(default_factory=list)
    tool_choice: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    cancel_token: Optional[CancellationToken] = None


class LanguageModel(Protocol):
    """Language-model capability: one structured result or a chunk stream."""

    async def call(self, request: LLMRequest) -> AIMessage:
        ...

    def stream(self, request: LLMRequest) -> AsyncIterator[StreamChunk]:
        ...


# ========== Tool results ==========


class ToolResult(BaseModel):
    """Content returned by a tool; ``is_error`` flags failure without raising."""

    content: List[Union[TextContent, ImageContent]] = Field(default_factory=list)
    is_error: bool = False

    @classmethod
    def text(cls, text: str, is_error: bool = False) -> "ToolResult":
        return cls(content=[TextContent(type="text", text=text)], is_error=is_error)

    @classmethod
    def error(cls, message: str) -> "ToolResult":
        return cls.text(message, is_error=True)

    def text_content(self) -> str:
        return "\n".join(item.text for item in self.content if isinstance(item, TextContent))


# ========== Progress events ==========


StreamEventType = Literal[
    "workflow",
    "text",
    "thinking",
    "tool_use",
    "tool_streaming",
    "tool_result",
    "file",
    "error",
    "finish",
    "agent_start",
    "agent_result",
]


@dataclass
class StreamEvent:
    """Progress event surfaced to the host while a task runs."""

    task_id: str
    agent_name: str
    type: StreamEventType
    node_id: Optional[str] = None
    stream_id: Optional[str] = None
    stream_done: Optional[bool] = None
    text: Optional[str] = None
    tool_id: Optional[str] = None
    tool_name: Optional[str] = None
    params: Optional[Dict[str, Any]] = None
    params_text: Optional[str] = None
    tool_result: Optional[ToolResult] = None
    workflow: Optional["Workflow"] = None
    mime_type: Optional[str] = None
    data: Optional[str] = None
    error: Any = None
    finish_reason: Optional[str] = None
    usage: Optional[TokenUsage] = None


class StreamCallback(Protocol):
    async def on_message(self, event: StreamEvent, agent_context: Any = None) -> None:
        ...


@dataclass
class ModelCatalog:
    """Named language models plus the fallback order used per phase."""

    llms: Dict[str, LanguageModel]
    agent_llms: List[str] = field(default_factory=list)
    plan_llms: List[str] = field(default_factory=list)

    def names_for(self, phase: Literal["agent", "plan"]) -> List[str]:
        names = self.plan_llms if phase == "plan" else self.agent_llms
        return list(names) or list(self.llms.keys())
