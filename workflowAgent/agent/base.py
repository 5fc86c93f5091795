"""Agent and its bounded react loop.

One ``Agent.run`` call executes one workflow node:

    Init -> (tool discovery) -> Prompting -> Awaiting-Model
         -> Dispatching-Tools -> ... -> Checking-Completion -> Done

The loop ends with the model's final text, the ``force_stop`` variable if a
tool set it, or ``UNFINISHED_RESULT`` when the iteration budget runs out.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Union

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_core.tools import BaseTool

from workflowAgent.agent.gates import check_task_completion, reconcile_todo_list
from workflowAgent.agent.hooks import AgentHooks
from workflowAgent.agent.prompts import has_variables
from workflowAgent.agent.streaming import (
    ToolCallPart,
    TurnPart,
    build_assistant_message,
    call_agent_llm,
    parse_tool_input,
    turn_text,
    turn_tool_calls,
)
from workflowAgent.agent.tool_results import convert_tool_result
from workflowAgent.core.cancellation import gather_or_cancel
from workflowAgent.core.chain import AgentChain, ToolChain
from workflowAgent.core.context import AgentContext, TaskContext
from workflowAgent.core.workflow import WorkflowAgent
from workflowAgent.llm.retry import RetryLanguageModel
from workflowAgent.llm.types import LLMRequest, StreamEvent, ToolResult
from workflowAgent.tools.base import Tool, as_tool, find_tool, merge_tools
from workflowAgent.tools.builtin.variable_storage import VariableStorageTool
from workflowAgent.tools.mcp.client import StdioMCPClient
from workflowAgent.tools.mcp.wrapper import wrap_mcp_tools
from workflowAgent.utils.error_handler import (
    ConsecutiveToolFailureError,
    TaskAbortedError,
    ToolExecutionError,
)
from workflowAgent.utils.logging_utils import log_tool_call, log_tool_result

LOGGER = logging.getLogger(__name__)

UNFINISHED_RESULT = "Unfinished"
FORCE_STOP_VARIABLE = "force_stop"


class Agent:
    """A named capability the planner can assign workflow nodes to."""

    def __init__(
        self,
        name: str,
        description: str,
        tools: Optional[List[Union[Tool, BaseTool]]] = None,
        llms: Optional[List[str]] = None,
        mcp_client: Optional[StdioMCPClient] = None,
        plan_description: Optional[str] = None,
        hooks: Optional[AgentHooks] = None,
        request_handler: Optional[Callable[[LLMRequest], None]] = None,
    ):
        self.name = name
        self.description = description
        self.tools: List[Tool] = [as_tool(tool) for tool in tools or []]
        self.llms = llms
        self.mcp_client = mcp_client
        self.plan_description = plan_description
        self.hooks = hooks or AgentHooks()
        self.request_handler = request_handler

    def __repr__(self) -> str:
        return f"<Agent {self.name}>"

    # ========== Entry points ==========

    async def run(self, context: TaskContext, agent_chain: AgentChain) -> str:
        mcp_client = self.mcp_client or context.mcp_client
        agent_context = AgentContext(context, self, agent_chain)
        context.current_agent = agent_context
        try:
            if mcp_client is not None and not mcp_client.is_connected():
                await mcp_client.connect(context.token)
            return await self.run_with_context(agent_context, mcp_client, context.settings.max_react_num)
        finally:
            if mcp_client is not None:
                await mcp_client.close()

    async def run_with_context(
        self,
        agent_context: AgentContext,
        mcp_client: Optional[StdioMCPClient] = None,
        max_react_num: int = 100,
        history_messages: Optional[List[BaseMessage]] = None,
    ) -> str:
        loop_num = 0
        check_num = 0
        context = agent_context.context
        settings = context.settings
        node = agent_context.node
        tools = merge_tools(self.tools, self.system_auto_tools(node))

        system_prompt = await self.hooks.build_system_prompt(agent_context, tools)
        user_prompt = await self.hooks.build_user_prompt(agent_context, tools)
        messages: List[BaseMessage] = [
            SystemMessage(content=system_prompt),
            *(history_messages or []),
            HumanMessage(content=user_prompt),
        ]
        agent_context.messages = messages
        rlm = RetryLanguageModel(context.models.llms, self.llms or context.models.names_for("agent"))
        agent_tools = tools

        while loop_num < max_react_num:
            await context.check_aborted()
            if mcp_client is not None:
                refresh, mcp_params = self.hooks.control_mcp_tools(agent_context, messages, loop_num)
                if refresh:
                    mcp_tools = await self.list_tools(context, mcp_client, node, mcp_params)
                    used_tools = [t for t in agent_tools if t.name in _called_tool_names(messages)]
                    agent_tools = merge_tools(tools, used_tools, mcp_tools)

            await self.hooks.handle_messages(agent_context, messages, agent_tools)
            results = await call_agent_llm(
                agent_context,
                rlm,
                messages,
                agent_tools,
                request_handler=self.request_handler,
            )

            force_stop = agent_context.variables.get(FORCE_STOP_VARIABLE)
            if force_stop:
                return force_stop

            final_result = await self.handle_call_result(agent_context, messages, agent_tools, results)
            loop_num += 1
            if final_result is None:
                if settings.expert and loop_num % settings.expert_mode_todo_loop_num == 0:
                    await reconcile_todo_list(agent_context, rlm, messages, agent_tools)
                continue

            if settings.expert and check_num == 0:
                check_num += 1
                if not await check_task_completion(agent_context, rlm, messages, agent_tools):
                    continue
            return final_result

        LOGGER.warning(f"Node {node.id} reached the iteration limit ({max_react_num})")
        return UNFINISHED_RESULT

    # ========== Turn handling ==========

    async def handle_call_result(
        self,
        agent_context: AgentContext,
        messages: List[BaseMessage],
        agent_tools: List[Tool],
        results: List[TurnPart],
    ) -> Optional[str]:
        """Fold one model turn into the conversation.

        Returns the final text when the turn has no tool calls, otherwise
        dispatches the calls, appends the assistant turn and its results,
        and returns None.
        """
        if not results:
            return None
        tool_calls = turn_tool_calls(results)
        if not tool_calls:
            return turn_text(results)

        user_messages: List[BaseMessage] = []
        slots = agent_context.agent_chain.allocate(
            [{"id": c.tool_call_id, "name": c.tool_name, "args": c.args} for c in tool_calls],
            agent_context.agent_chain.agent_request,
        )
        if len(tool_calls) > 1 and self.hooks.can_parallel_tool_calls(agent_context, tool_calls, agent_tools):
            tool_messages = await gather_or_cancel(
                *(
                    self.call_tool(agent_context, agent_tools, call, slot, user_messages)
                    for call, slot in zip(tool_calls, slots)
                )
            )
        else:
            tool_messages = []
            for call, slot in zip(tool_calls, slots):
                tool_messages.append(await self.call_tool(agent_context, agent_tools, call, slot, user_messages))

        messages.append(build_assistant_message(results))
        messages.extend(tool_messages)
        messages.extend(user_messages)
        return None

    async def call_tool(
        self,
        agent_context: AgentContext,
        agent_tools: List[Tool],
        call: ToolCallPart,
        tool_chain: ToolChain,
        user_messages: List[BaseMessage],
    ) -> ToolMessage:
        """Execute one tool call; failures become error-flagged results."""
        context = agent_context.context
        try:
            args = parse_tool_input(call.input)
            tool_chain.update_params(args)
            tool = find_tool(agent_tools, call.tool_name)
            if tool is None:
                raise ToolExecutionError(f"{call.tool_name} tool does not exist")
            log_tool_call(LOGGER, call.tool_name, args)
            tool_result = await tool.execute(args, agent_context)
            tool_chain.update_tool_result(tool_result)
            agent_context.consecutive_error_num = 0
        except TaskAbortedError:
            raise
        except Exception as e:
            LOGGER.error(f"Tool call error: {call.tool_name} {call.input}: {e}")
            tool_result = ToolResult.error(str(e) or type(e).__name__)
            tool_chain.update_tool_result(tool_result)
            agent_context.consecutive_error_num += 1
            if agent_context.consecutive_error_num >= context.settings.max_consecutive_tool_errors:
                raise ConsecutiveToolFailureError(
                    f"{agent_context.consecutive_error_num} consecutive tool failures, last: {e}",
                    agent_context.consecutive_error_num,
                ) from e
        log_tool_result(LOGGER, call.tool_name, tool_result.text_content(), success=not tool_result.is_error)

        await context.emit(
            StreamEvent(
                task_id=context.task_id,
                agent_name=self.name,
                node_id=agent_context.node.id,
                type="tool_result",
                tool_id=call.tool_call_id,
                tool_name=call.tool_name,
                params=tool_chain.params,
                tool_result=tool_result,
            ),
            agent_context,
        )
        return convert_tool_result(
            call.tool_call_id,
            call.tool_name,
            tool_result,
            user_messages,
            multimodal=context.settings.tool_result_multimodal,
        )

    # ========== Tools ==========

    def system_auto_tools(self, node: WorkflowAgent) -> List[Tool]:
        tools: List[Tool] = []
        if has_variables(node):
            tools.append(VariableStorageTool())
        names = {tool.name for tool in self.tools}
        return [tool for tool in tools if tool.name not in names]

    async def list_tools(
        self,
        context: TaskContext,
        mcp_client: StdioMCPClient,
        node: Optional[WorkflowAgent] = None,
        mcp_params: Optional[dict] = None,
    ) -> List[Tool]:
        """List external tools; failures yield no tools."""
        try:
            if not mcp_client.is_connected():
                await mcp_client.connect(context.token)
            schemas = await mcp_client.list_tools(
                {
                    "taskId": context.task_id,
                    "nodeId": node.id if node else None,
                    "environment": context.settings.platform,
                    "agent_name": node.name if node and node.name else self.name,
                    "params": {},
                    "prompt": (node.task if node else "") or context.chain.task_prompt,
                    **(mcp_params or {}),
                },
                token=context.token,
            )
            return wrap_mcp_tools(schemas, mcp_client)
        except TaskAbortedError:
            raise
        except Exception as e:
            LOGGER.error(f"MCP list_tools failed: {e}")
            return []


def _called_tool_names(messages: List[BaseMessage]) -> set:
    names = set()
    for message in messages:
        for call in getattr(message, "tool_calls", None) or []:
            names.add(call.get("name"))
    return names
