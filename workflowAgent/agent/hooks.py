"""Prompt and message-shaping capability set for agents.

An Agent is composed with an ``AgentHooks`` instance instead of being
subclassed. The default hooks build the standard prompts, trim the context
before each turn and allow parallel tool calls when the task policy does.
``VisualFeedbackHooks`` wraps another hooks object and injects a fresh
screenshot after every tool turn.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from langchain_core.messages import BaseMessage, HumanMessage, ToolMessage

from workflowAgent.agent.prompts import get_agent_system_prompt, get_agent_user_prompt
from workflowAgent.context.trimmer import trim_large_context
from workflowAgent.tools.base import Tool, find_tool

if TYPE_CHECKING:
    from workflowAgent.agent.streaming import ToolCallPart
    from workflowAgent.core.context import AgentContext

LOGGER = logging.getLogger(__name__)

UserPrompt = Union[str, List[Dict[str, Any]]]


class AgentHooks:
    """Default prompt building, message shaping and parallelism policy."""

    async def ext_system_prompt(self, agent_context: "AgentContext", tools: List[Tool]) -> str:
        return ""

    async def build_system_prompt(self, agent_context: "AgentContext", tools: List[Tool]) -> str:
        return get_agent_system_prompt(
            agent_context.agent,
            agent_context.node,
            agent_context.context,
            tools,
            await self.ext_system_prompt(agent_context, tools),
        )

    async def build_user_prompt(self, agent_context: "AgentContext", tools: List[Tool]) -> UserPrompt:
        return get_agent_user_prompt(agent_context.agent, agent_context.node, agent_context.context, tools)

    async def handle_messages(
        self,
        agent_context: "AgentContext",
        messages: List[BaseMessage],
        tools: List[Tool],
    ) -> None:
        trim_large_context(messages, agent_context.context.settings)

    def can_parallel_tool_calls(
        self,
        agent_context: "AgentContext",
        tool_calls: List["ToolCallPart"],
        tools: List[Tool],
    ) -> bool:
        if not agent_context.context.settings.parallel_tool_calls:
            return False
        for call in tool_calls:
            tool = find_tool(tools, call.tool_name)
            if tool is not None and not tool.supports_parallel_calls:
                return False
        return True

    def control_mcp_tools(
        self,
        agent_context: "AgentContext",
        messages: List[BaseMessage],
        loop_num: int,
    ) -> Tuple[bool, Optional[Dict[str, Any]]]:
        """Return (refresh external tools now, extra list params)."""
        return loop_num == 0, None


# (agent_context) -> (base64 image data, mime type)
Screenshot = Callable[["AgentContext"], Awaitable[Tuple[str, str]]]


class VisualFeedbackHooks(AgentHooks):
    """Delegate to ``base`` and attach a screenshot after each tool turn."""

    def __init__(self, screenshot: Screenshot, base: Optional[AgentHooks] = None):
        self.screenshot = screenshot
        self.base = base or AgentHooks()

    async def ext_system_prompt(self, agent_context: "AgentContext", tools: List[Tool]) -> str:
        return await self.base.ext_system_prompt(agent_context, tools)

    async def build_system_prompt(self, agent_context: "AgentContext", tools: List[Tool]) -> str:
        return await self.base.build_system_prompt(agent_context, tools)

    async def build_user_prompt(self, agent_context: "AgentContext", tools: List[Tool]) -> UserPrompt:
        return await self.base.build_user_prompt(agent_context, tools)

    def can_parallel_tool_calls(self, agent_context, tool_calls, tools) -> bool:
        # screen actions always run in emission order
        return False

    def control_mcp_tools(self, agent_context, messages, loop_num):
        return self.base.control_mcp_tools(agent_context, messages, loop_num)

    async def handle_messages(
        self,
        agent_context: "AgentContext",
        messages: List[BaseMessage],
        tools: List[Tool],
    ) -> None:
        if messages and isinstance(messages[-1], ToolMessage):
            try:
                data, mime_type = await self.screenshot(agent_context)
            except Exception as e:
                LOGGER.warning(f"Screenshot failed, continuing without visual feedback: {e}")
            else:
                messages.append(
                    HumanMessage(
                        content=[
                            {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{data}"}},
                            {"type": "text", "text": "This is the current screenshot after the last operation."},
                        ]
                    )
                )
        await self.base.handle_messages(agent_context, messages, tools)
