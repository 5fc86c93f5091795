"""Streaming response assembler.

``call_agent_llm`` sends one request through a RetryLanguageModel and folds
the resulting chunk stream into the parts of one assistant turn: a single
text part (when the model produced visible text) followed by the tool calls
in emission order. Progress events are emitted on every delta.

Around the stream it applies the request policy: compression before the
call when the conversation grows past the configured thresholds, draining
of queued user interventions for unforced calls, quadratic backoff on
failures, and one compression-and-retry on a ``length`` finish.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple, Union

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from workflowAgent.context.compressor import ContextCompressor
from workflowAgent.core.cancellation import CancellationToken
from workflowAgent.core.context import AgentContext
from workflowAgent.llm.retry import RetryLanguageModel
from workflowAgent.llm.types import (
    ErrorChunk,
    FileChunk,
    FinishChunk,
    LLMRequest,
    ReasoningDelta,
    ReasoningEnd,
    ReasoningStart,
    StreamChunk,
    StreamEvent,
    TextDelta,
    TextEnd,
    TextStart,
    TokenUsage,
    ToolCallChunk,
    ToolInputDelta,
    ToolInputStart,
)
from workflowAgent.tools.base import Tool
from workflowAgent.utils.error_handler import (
    ContextOverflowError,
    ModelInvocationError,
    TaskAbortedError,
    is_context_overflow,
)
from workflowAgent.utils.message_utils import stringify_content

LOGGER = logging.getLogger(__name__)

INTERVENTION_PREFIX = (
    "The user is intervening in the current task, please replan and execute "
    "according to the following instructions:\n"
)


@dataclass
class TextPart:
    text: str


@dataclass
class ToolCallPart:
    tool_call_id: str
    tool_name: str
    input: str = "{}"
    args: Dict[str, Any] = field(default_factory=dict)


TurnPart = Union[TextPart, ToolCallPart]


def parse_tool_input(raw: Optional[str]) -> Dict[str, Any]:
    """Parse tool argument text; raises ValueError on malformed JSON."""
    if not raw or not raw.strip():
        return {}
    value = json.loads(raw)
    if not isinstance(value, dict):
        raise ValueError(f"Tool arguments must be a JSON object, got {type(value).__name__}")
    return value


def _loose_args(raw: Optional[str]) -> Dict[str, Any]:
    try:
        return parse_tool_input(raw)
    except ValueError:
        return {}


def turn_text(parts: List[TurnPart]) -> str:
    return "\n\n".join(p.text for p in parts if isinstance(p, TextPart))


def turn_tool_calls(parts: List[TurnPart]) -> List[ToolCallPart]:
    return [p for p in parts if isinstance(p, ToolCallPart)]


def build_assistant_message(parts: List[TurnPart]) -> AIMessage:
    return AIMessage(
        content=turn_text(parts),
        tool_calls=[
            {"id": p.tool_call_id, "name": p.tool_name, "args": p.args, "type": "tool_call"}
            for p in turn_tool_calls(parts)
        ],
    )


def append_user_conversation(agent_context: AgentContext, messages: List[BaseMessage]) -> None:
    """Fold queued user interventions into one user message."""
    queued = agent_context.context.drain_conversation()
    if not queued:
        return
    text = INTERVENTION_PREFIX + "\n".join(f"- {item}" for item in queued)
    LOGGER.info(f"Appending {len(queued)} user intervention(s)")
    messages.append(HumanMessage(content=text))


async def compress_agent_messages(
    agent_context: AgentContext,
    rlm: RetryLanguageModel,
    messages: List[BaseMessage],
) -> None:
    """Run the compression collaborator over ``messages`` in place."""
    context = agent_context.context
    compressor = context.compressor or ContextCompressor(context.settings)

    async def invoke(prompt: str, max_tokens: int) -> str:
        with context.step() as token:
            result = await rlm.call(
                LLMRequest(
                    messages=[HumanMessage(content=prompt)],
                    max_tokens=max_tokens,
                    temperature=0.3,
                    cancel_token=token,
                )
            )
        return stringify_content(result.content)

    await compressor.compress(messages, invoke)


class _StreamBuffer:
    """Cumulative text per stream id with at most one final event per id.

    A provider id written again after its final event continues under a
    fresh id (``<id>-1``, ``<id>-2``, ...).
    """

    def __init__(self):
        self.text: Dict[str, str] = {}
        self.open: Dict[str, bool] = {}
        self._current: Dict[str, str] = {}
        self._reopened: Dict[str, int] = {}

    def _stream_id(self, source_id: str) -> str:
        stream_id = self._current.get(source_id, source_id)
        if self.open.get(stream_id) is False:
            count = self._reopened.get(source_id, 0) + 1
            self._reopened[source_id] = count
            stream_id = f"{source_id}-{count}"
        self._current[source_id] = stream_id
        return stream_id

    def start(self, source_id: str) -> None:
        stream_id = self._stream_id(source_id)
        self.text.setdefault(stream_id, "")
        self.open[stream_id] = True

    def append(self, source_id: str, delta: str) -> Tuple[str, str]:
        stream_id = self._stream_id(source_id)
        self.text[stream_id] = self.text.get(stream_id, "") + delta
        self.open[stream_id] = True
        return stream_id, self.text[stream_id]

    def close(self, source_id: str) -> Optional[Tuple[str, str]]:
        stream_id = self._current.get(source_id, source_id)
        if not self.open.get(stream_id):
            return None
        self.open[stream_id] = False
        return stream_id, self.text[stream_id]

    def close_all(self) -> List[Tuple[str, str]]:
        closed = []
        for stream_id, is_open in self.open.items():
            if is_open:
                self.open[stream_id] = False
                closed.append((stream_id, self.text[stream_id]))
        return closed


class _Assembler:
    """Fold one chunk stream into turn parts while emitting progress events."""

    def __init__(self, agent_context: AgentContext):
        self.agent_context = agent_context
        self.context = agent_context.context
        self.node = agent_context.node
        self.text_segments: List[str] = []
        self.reasoning: List[str] = []
        self.tool_parts: List[ToolCallPart] = []
        self.finish_reason: Optional[str] = None
        self.usage: Optional[TokenUsage] = None

        self._text = _StreamBuffer()
        self._thinking = _StreamBuffer()
        self._tool_args: Dict[str, str] = {}
        self._tool_names: Dict[str, str] = {}
        # started tool calls still waiting for their tool-call chunk
        self._pending_tools: List[str] = []

    async def _emit(self, **kwargs: Any) -> None:
        event = StreamEvent(
            task_id=self.context.task_id,
            agent_name=self.node.name,
            node_id=self.node.id,
            **kwargs,
        )
        await self.context.emit(event, self.agent_context)

    async def _close_text(self) -> None:
        for stream_id, text in self._text.close_all():
            await self._emit(type="text", stream_id=stream_id, stream_done=True, text=text)

    async def _close_thinking(self) -> None:
        for stream_id, text in self._thinking.close_all():
            await self._emit(type="thinking", stream_id=stream_id, stream_done=True, text=text)

    async def _add_tool_part(self, tool_call_id: str, tool_name: str, raw: str) -> None:
        part = ToolCallPart(
            tool_call_id=tool_call_id,
            tool_name=tool_name,
            input=raw or "{}",
            args=_loose_args(raw),
        )
        self.tool_parts.append(part)
        await self._emit(type="tool_use", tool_id=part.tool_call_id, tool_name=part.tool_name, params=part.args)

    async def feed(self, chunk: StreamChunk) -> None:
        if isinstance(chunk, TextStart):
            self._text.start(chunk.id)
        elif isinstance(chunk, TextDelta):
            if not chunk.delta:
                return
            stream_id, text = self._text.append(chunk.id, chunk.delta)
            self.text_segments.append(chunk.delta)
            await self._emit(type="text", stream_id=stream_id, stream_done=False, text=text)
        elif isinstance(chunk, TextEnd):
            closed = self._text.close(chunk.id)
            if closed is not None:
                await self._emit(type="text", stream_id=closed[0], stream_done=True, text=closed[1])
        elif isinstance(chunk, ReasoningStart):
            self._thinking.start(chunk.id)
        elif isinstance(chunk, ReasoningDelta):
            if not chunk.delta:
                return
            stream_id, text = self._thinking.append(chunk.id, chunk.delta)
            self.reasoning.append(chunk.delta)
            await self._emit(type="thinking", stream_id=stream_id, stream_done=False, text=text)
        elif isinstance(chunk, ReasoningEnd):
            closed = self._thinking.close(chunk.id)
            if closed is not None:
                await self._emit(type="thinking", stream_id=closed[0], stream_done=True, text=closed[1])
        elif isinstance(chunk, ToolInputStart):
            self._tool_names[chunk.id] = chunk.tool_name
            self._tool_args.setdefault(chunk.id, "")
            if chunk.id not in self._pending_tools:
                self._pending_tools.append(chunk.id)
        elif isinstance(chunk, ToolInputDelta):
            await self._close_text()
            self._tool_args[chunk.id] = self._tool_args.get(chunk.id, "") + chunk.delta
            await self._emit(
                type="tool_streaming",
                tool_id=chunk.id,
                tool_name=self._tool_names.get(chunk.id, ""),
                params_text=self._tool_args[chunk.id],
            )
        elif isinstance(chunk, ToolCallChunk):
            await self._close_text()
            if chunk.tool_call_id in self._pending_tools:
                self._pending_tools.remove(chunk.tool_call_id)
            await self._add_tool_part(
                chunk.tool_call_id,
                chunk.tool_name or self._tool_names.get(chunk.tool_call_id, ""),
                chunk.input if chunk.input else self._tool_args.get(chunk.tool_call_id, ""),
            )
        elif isinstance(chunk, FileChunk):
            await self._emit(type="file", mime_type=chunk.media_type, data=chunk.data)
        elif isinstance(chunk, ErrorChunk):
            LOGGER.error(f"{self.node.name} agent error: {chunk.error}")
            await self._emit(type="error", error=chunk.error)
            raise ModelInvocationError(f"LLM Error: {chunk.error}")
        elif isinstance(chunk, FinishChunk):
            await self.flush()
            self.finish_reason = chunk.finish_reason
            self.usage = chunk.usage
            self.agent_context.agent_chain.usage.append(chunk.usage)
            await self._emit(type="finish", finish_reason=chunk.finish_reason, usage=chunk.usage)

    async def flush(self) -> None:
        """Close open text and reasoning streams and complete started tool calls."""
        await self._close_thinking()
        await self._close_text()
        pending, self._pending_tools = self._pending_tools, []
        for tool_call_id in pending:
            await self._add_tool_part(tool_call_id, self._tool_names[tool_call_id], self._tool_args[tool_call_id])

    def parts(self) -> List[TurnPart]:
        text = "".join(self.text_segments)
        parts: List[TurnPart] = [TextPart(text)] if text else []
        parts.extend(self.tool_parts)
        return parts


async def _read_stream(
    assembler: _Assembler,
    stream: AsyncIterator[StreamChunk],
    token: CancellationToken,
) -> None:
    iterator = stream.__aiter__()
    try:
        while True:
            await assembler.context.check_aborted()
            try:
                chunk = await token.guard(iterator.__anext__())
            except StopAsyncIteration:
                break
            await assembler.feed(chunk)
        await assembler.flush()
    finally:
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()


async def call_agent_llm(
    agent_context: AgentContext,
    rlm: RetryLanguageModel,
    messages: List[BaseMessage],
    tools: List[Tool],
    no_compress: bool = False,
    tool_choice: Optional[str] = None,
    retry_num: int = 0,
    request_handler: Optional[Callable[[LLMRequest], None]] = None,
    overflow_retry_num: int = 0,
    length_retried: bool = False,
) -> List[TurnPart]:
    """Run one model turn and return its text and tool-call parts.

    Args:
        agent_context: Owning agent node context
        rlm: Model endpoints with fallback
        messages: Conversation, mutated in place by compression and by
            appended user interventions
        tools: Tools offered to the model
        no_compress: Skip the compression trigger (used by gate checks)
        tool_choice: Force the model to call this tool
        retry_num: Attempts already spent on transport failures

    Raises:
        TaskAbortedError: The task was aborted
        ModelInvocationError: Failures outlived the retry budget
        ContextOverflowError: The context stayed too long after compression retries
    """
    context = agent_context.context
    settings = context.settings
    await context.check_aborted()

    tool_schemas = [tool.to_schema() for tool in tools]
    compressor = context.compressor or ContextCompressor(settings)
    if not no_compress and compressor.should_compress(messages, tool_schemas):
        LOGGER.info(f"Conversation reached {len(messages)} messages, compressing before model call")
        await compress_agent_messages(agent_context, rlm, messages)

    if tool_choice is None:
        append_user_conversation(agent_context, messages)

    retry = dict(
        no_compress=no_compress,
        tool_choice=tool_choice,
        request_handler=request_handler,
    )
    assembler = _Assembler(agent_context)
    with context.step() as token:
        request = LLMRequest(
            messages=messages,
            tools=tool_schemas,
            tool_choice=tool_choice,
            max_tokens=settings.max_tokens,
            cancel_token=token,
        )
        if request_handler is not None:
            request_handler(request)
        agent_context.agent_chain.agent_request = request
        try:
            stream = await rlm.call_stream(request)
            await _read_stream(assembler, stream, token)
        except TaskAbortedError:
            raise
        except Exception as e:
            await context.check_aborted()
            if is_context_overflow(e) and overflow_retry_num < settings.max_retry_num:
                LOGGER.warning(f"Context too long, compressing and retrying: {e}")
                await compress_agent_messages(agent_context, rlm, messages)
                return await call_agent_llm(
                    agent_context, rlm, messages, tools,
                    retry_num=retry_num, overflow_retry_num=overflow_retry_num + 1,
                    length_retried=length_retried, **retry,
                )
            if retry_num < settings.max_retry_num:
                delay = settings.retry_base_delay * (retry_num + 1) ** 2
                LOGGER.warning(f"Model call failed (attempt {retry_num + 1}), retrying in {delay:.1f}s: {e}")
                await context.token.guard(asyncio.sleep(delay))
                return await call_agent_llm(
                    agent_context, rlm, messages, tools,
                    retry_num=retry_num + 1, overflow_retry_num=overflow_retry_num,
                    length_retried=length_retried, **retry,
                )
            if is_context_overflow(e) and not isinstance(e, ContextOverflowError):
                raise ContextOverflowError(str(e), "The conversation is too long for the model") from e
            raise

    if assembler.finish_reason == "length" and not no_compress and not length_retried:
        LOGGER.warning("Model output hit the length limit, compressing and retrying once")
        await compress_agent_messages(agent_context, rlm, messages)
        return await call_agent_llm(
            agent_context, rlm, messages, tools,
            retry_num=retry_num, overflow_retry_num=overflow_retry_num,
            length_retried=True, **retry,
        )

    parts = assembler.parts()
    agent_context.agent_chain.agent_result = turn_text(parts)
    return parts
