"""Adapter exposing a LangChain chat model as a language-model capability.

``call`` returns the AIMessage produced by ``ainvoke``. ``stream`` converts
``AIMessageChunk`` objects from ``astream`` into typed stream chunks: text and
reasoning deltas, per-index tool argument deltas, one ToolCallChunk per call
and a closing FinishChunk carrying the finish reason and token usage.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, AsyncIterator, Dict, List, Optional

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, AIMessageChunk

from workflowAgent.llm.types import (
    FinishChunk,
    LLMRequest,
    ReasoningDelta,
    StreamChunk,
    TextDelta,
    TokenUsage,
    ToolCallChunk,
    ToolInputDelta,
    ToolInputStart,
)

LOGGER = logging.getLogger(__name__)

_FINISH_REASONS = {
    "stop": "stop",
    "end_turn": "stop",
    "tool_calls": "tool-calls",
    "function_call": "tool-calls",
    "tool_use": "tool-calls",
    "length": "length",
    "max_tokens": "length",
    "content_filter": "content-filter",
}


def map_finish_reason(reason: Optional[str]) -> str:
    if not reason:
        return "stop"
    return _FINISH_REASONS.get(reason, "other")


class ChunkConverter:
    """Stateful conversion of AIMessageChunk objects into stream chunks."""

    def __init__(self):
        self.text_id = uuid.uuid4().hex
        self.reasoning_id = uuid.uuid4().hex
        self._calls: Dict[int, Dict[str, str]] = {}
        self._finish_reason: Optional[str] = None
        self._usage = TokenUsage()

    def feed(self, chunk: AIMessageChunk) -> List[StreamChunk]:
        parts: List[StreamChunk] = []

        reasoning = chunk.additional_kwargs.get("reasoning_content")
        if reasoning:
            parts.append(ReasoningDelta(id=self.reasoning_id, delta=reasoning))

        content = chunk.content
        if isinstance(content, str):
            if content:
                parts.append(TextDelta(id=self.text_id, delta=content))
        else:
            for block in content:
                if isinstance(block, str):
                    parts.append(TextDelta(id=self.text_id, delta=block))
                elif block.get("type") == "text" and block.get("text"):
                    parts.append(TextDelta(id=self.text_id, delta=block["text"]))
                elif block.get("type") in ("thinking", "reasoning"):
                    delta = block.get("thinking") or block.get("reasoning") or block.get("text")
                    if delta:
                        parts.append(ReasoningDelta(id=self.reasoning_id, delta=delta))

        for position, tool_chunk in enumerate(chunk.tool_call_chunks or []):
            index = tool_chunk.get("index")
            if index is None:
                index = position
            call = self._calls.get(index)
            if call is None:
                call = {
                    "id": tool_chunk.get("id") or f"call_{uuid.uuid4().hex[:24]}",
                    "name": tool_chunk.get("name") or "",
                    "args": "",
                }
                self._calls[index] = call
                parts.append(ToolInputStart(id=call["id"], tool_name=call["name"]))
            elif tool_chunk.get("name") and not call["name"]:
                call["name"] = tool_chunk["name"]
            args = tool_chunk.get("args")
            if args:
                call["args"] += args
                parts.append(ToolInputDelta(id=call["id"], delta=args))

        finish_reason = (chunk.response_metadata or {}).get("finish_reason")
        if finish_reason:
            self._finish_reason = finish_reason
        usage = chunk.usage_metadata
        if usage:
            self._usage = TokenUsage(
                prompt_tokens=usage.get("input_tokens", 0),
                completion_tokens=usage.get("output_tokens", 0),
                total_tokens=usage.get("total_tokens", 0),
            )
        return parts

    def finish(self) -> List[StreamChunk]:
        parts: List[StreamChunk] = [
            ToolCallChunk(tool_call_id=call["id"], tool_name=call["name"], input=call["args"] or "{}")
            for _, call in sorted(self._calls.items())
        ]
        reason = map_finish_reason(self._finish_reason)
        if self._calls and reason == "stop":
            reason = "tool-calls"
        parts.append(FinishChunk(finish_reason=reason, usage=self._usage))
        return parts


class LangChainLanguageModel:
    """Language-model capability backed by a LangChain chat model."""

    def __init__(self, model: BaseChatModel, name: Optional[str] = None):
        self.model = model
        self.name = name or getattr(model, "model_name", None) or type(model).__name__

    def _runnable(self, request: LLMRequest):
        runnable: Any = self.model
        if request.tools:
            if request.tool_choice:
                runnable = self.model.bind_tools(request.tools, tool_choice=request.tool_choice)
            else:
                runnable = self.model.bind_tools(request.tools)
        kwargs: Dict[str, Any] = {}
        if request.max_tokens:
            kwargs["max_tokens"] = request.max_tokens
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        if kwargs:
            runnable = runnable.bind(**kwargs)
        return runnable

    async def call(self, request: LLMRequest) -> AIMessage:
        result = await self._runnable(request).ainvoke(request.messages)
        if not isinstance(result, AIMessage):
            result = AIMessage(content=getattr(result, "content", str(result)))
        return result

    async def stream(self, request: LLMRequest) -> AsyncIterator[StreamChunk]:
        converter = ChunkConverter()
        async for chunk in self._runnable(request).astream(request.messages):
            if not isinstance(chunk, AIMessageChunk):
                continue
            for part in converter.feed(chunk):
                yield part
        for part in converter.finish():
            yield part
