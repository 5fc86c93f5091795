"""Tool contract used by agent loops.

A tool is a named function with a JSON-Schema parameter contract and an
``execute(args, agent_context) -> ToolResult`` coroutine. Failures are
reported through ``ToolResult.is_error``; raising is also tolerated and is
converted to an error result by the loop.
"""

from __future__ import annotations

import inspect
import json
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Union

from langchain_core.tools import BaseTool
from langchain_core.utils.function_calling import convert_to_openai_tool

from workflowAgent.llm.types import ToolResult

if TYPE_CHECKING:
    from workflowAgent.core.context import AgentContext

LOGGER = logging.getLogger(__name__)


class Tool(ABC):
    """Base class for every tool offered to the model."""

    name: str = ""
    description: str = ""
    parameters: Dict[str, Any] = {"type": "object", "properties": {}}
    # Tools that cannot safely run concurrently with their siblings.
    supports_parallel_calls: bool = True

    @abstractmethod
    async def execute(self, args: Dict[str, Any], agent_context: "AgentContext") -> ToolResult:
        ...

    def to_schema(self) -> Dict[str, Any]:
        """OpenAI-style function schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


ToolFunction = Callable[..., Union[Awaitable[Any], Any]]


def to_tool_result(value: Any) -> ToolResult:
    """Normalize a plain return value into a ToolResult."""
    if isinstance(value, ToolResult):
        return value
    if value is None:
        return ToolResult()
    if isinstance(value, str):
        return ToolResult.text(value)
    return ToolResult.text(json.dumps(value, ensure_ascii=False, default=str))


class FunctionTool(Tool):
    """Wrap a plain (async or sync) function ``fn(args, agent_context)``."""

    def __init__(
        self,
        name: str,
        description: str,
        parameters: Dict[str, Any],
        fn: ToolFunction,
        supports_parallel_calls: bool = True,
    ):
        self.name = name
        self.description = description
        self.parameters = parameters
        self.fn = fn
        self.supports_parallel_calls = supports_parallel_calls

    async def execute(self, args: Dict[str, Any], agent_context: "AgentContext") -> ToolResult:
        value = self.fn(args, agent_context)
        if inspect.isawaitable(value):
            value = await value
        return to_tool_result(value)


class LangChainToolAdapter(Tool):
    """Expose a LangChain ``BaseTool`` through the Tool contract."""

    def __init__(self, tool: BaseTool):
        self.tool = tool
        self.name = tool.name
        self.description = tool.description
        self.parameters = convert_to_openai_tool(tool)["function"].get(
            "parameters", {"type": "object", "properties": {}}
        )

    async def execute(self, args: Dict[str, Any], agent_context: "AgentContext") -> ToolResult:
        return to_tool_result(await self.tool.ainvoke(args))


def as_tool(tool: Union[Tool, BaseTool]) -> Tool:
    if isinstance(tool, Tool):
        return tool
    if isinstance(tool, BaseTool):
        return LangChainToolAdapter(tool)
    raise TypeError(f"Unsupported tool type: {type(tool).__name__}")


def merge_tools(*groups: List[Tool]) -> List[Tool]:
    """Concatenate tool lists, keeping the first tool seen for each name."""
    merged: List[Tool] = []
    names = set()
    for group in groups:
        for tool in group:
            if tool.name in names:
                continue
            names.add(tool.name)
            merged.append(tool)
    return merged


def find_tool(tools: List[Tool], name: str) -> Optional[Tool]:
    for tool in tools:
        if tool.name == name:
            return tool
    return None
