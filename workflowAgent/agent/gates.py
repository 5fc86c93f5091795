"""Forced-tool control exchanges run inside the agent loop (expert mode).

Both gates ask the model to call one verification function with tool choice
forced, then turn the structured answer into a synthesized user message.
Neither is a hard dependency of the loop: the completion check fails open
to "completed", and todo reconciliation failures are only logged.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from workflowAgent.agent.streaming import call_agent_llm, parse_tool_input, turn_tool_calls
from workflowAgent.core.context import AgentContext
from workflowAgent.llm.retry import RetryLanguageModel
from workflowAgent.llm.types import StreamEvent, ToolResult
from workflowAgent.tools.base import FunctionTool, Tool, find_tool, merge_tools
from workflowAgent.utils.error_handler import TaskAbortedError

LOGGER = logging.getLogger(__name__)

TASK_RESULT_CHECK = "task_result_check"
TODO_LIST_MANAGER = "todo_list_manager"

INCOMPLETE_PROMPT = (
    "It seems that your task has not been fully completed. "
    "Please continue with the remaining steps:\n{todo_list}"
)
LOOP_DETECTED_PROMPT = (
    "## Loop detection\nIt seems that your task is being executed in a loop, "
    "Please change the execution strategy and try other methods to complete the current task.\n\n"
)


def _success(args: Dict[str, Any], agent_context: AgentContext) -> ToolResult:
    return ToolResult.text("success")


task_result_check_tool = FunctionTool(
    name=TASK_RESULT_CHECK,
    description=(
        "Check the current task execution process and results, evaluate the overall completion "
        "status of the current task, and whether the output variables in the nodes are stored."
    ),
    parameters={
        "type": "object",
        "properties": {
            "thought": {
                "type": "string",
                "description": "Analysis of the overall execution process and results, "
                "deciding whether the task has been completed.",
            },
            "completionStatus": {
                "type": "string",
                "description": "Only 'completed' when the whole current task is finished; "
                "partial completion or failure is 'incomplete'.",
                "enum": ["completed", "incomplete"],
            },
            "todoList": {
                "type": "string",
                "description": "For incomplete tasks, what still remains to be done.",
            },
        },
        "required": ["thought", "completionStatus"],
    },
    fn=_success,
)

todo_list_manager_tool = FunctionTool(
    name=TODO_LIST_MANAGER,
    description=(
        "Manage the to-do list of the current task: update completed and pending items according "
        "to the execution status, and detect whether steps are being repeated in a loop."
    ),
    parameters={
        "type": "object",
        "properties": {
            "completedList": {
                "type": "array",
                "description": "Items of the current task that are completed.",
                "items": {"type": "string"},
            },
            "todoList": {
                "type": "array",
                "description": "Items of the current task that are still pending.",
                "items": {"type": "string"},
            },
            "loopDetection": {
                "type": "string",
                "description": "Whether the current step repeats previous steps.",
                "enum": ["loop", "no_loop"],
            },
        },
        "required": ["completedList", "todoList", "loopDetection"],
    },
    fn=_success,
)


def extract_used_tools(messages: List[BaseMessage], tools: List[Tool]) -> List[Tool]:
    """Tools that were actually called in ``messages``."""
    used: List[Tool] = []
    seen = set()
    for message in messages:
        if not isinstance(message, AIMessage):
            continue
        for call in message.tool_calls:
            name = call.get("name")
            if name in seen:
                continue
            tool = find_tool(tools, name)
            if tool is not None:
                seen.add(name)
                used.append(tool)
    return used


async def _forced_call(
    agent_context: AgentContext,
    rlm: RetryLanguageModel,
    messages: List[BaseMessage],
    tools: List[Tool],
    gate_tool: FunctionTool,
) -> Dict[str, Any]:
    gate_messages = list(messages)
    gate_messages.append(
        HumanMessage(
            content=f"Task:\n{agent_context.node.xml}\n\nPlease check the completion status of the current task."
        )
    )
    parts = await call_agent_llm(
        agent_context,
        rlm,
        gate_messages,
        merge_tools(extract_used_tools(messages, tools), [gate_tool]),
        no_compress=True,
        tool_choice=gate_tool.name,
    )
    calls = turn_tool_calls(parts)
    if not calls:
        raise ValueError(f"Model did not call {gate_tool.name}")
    call = calls[0]
    args = parse_tool_input(call.input)
    tool_result = await gate_tool.execute(args, agent_context)

    context = agent_context.context
    await context.emit(
        StreamEvent(
            task_id=context.task_id,
            agent_name=agent_context.agent.name,
            node_id=agent_context.node.id,
            type="tool_result",
            tool_id=call.tool_call_id,
            tool_name=call.tool_name,
            params=args,
            tool_result=tool_result,
        ),
        agent_context,
    )
    return args


async def check_task_completion(
    agent_context: AgentContext,
    rlm: RetryLanguageModel,
    messages: List[BaseMessage],
    tools: List[Tool],
) -> bool:
    """Ask the model whether the node is done; True on any failure."""
    try:
        args = await _forced_call(agent_context, rlm, messages, tools, task_result_check_tool)
    except TaskAbortedError:
        raise
    except Exception as e:
        LOGGER.error(f"Task result check failed, treating as completed: {e}")
        return True

    if args.get("completionStatus") == "incomplete":
        LOGGER.info(f"Node {agent_context.node.id} reported incomplete, continuing")
        messages.append(HumanMessage(content=INCOMPLETE_PROMPT.format(todo_list=args.get("todoList") or "")))
        return False
    return True


def build_todo_prompt(args: Dict[str, Any]) -> str:
    prompt = "# Task Execution Status\n"
    completed = args.get("completedList") or []
    if completed:
        prompt += "## Completed task list\n"
        prompt += "".join(f"- {item}\n" for item in completed)
        prompt += "\n"
    pending = args.get("todoList") or []
    if pending:
        prompt += "## Pending task list\n"
        prompt += "".join(f"- {item}\n" for item in pending)
        prompt += "\n"
    if args.get("loopDetection") == "loop":
        prompt += LOOP_DETECTED_PROMPT
    prompt += "Please continue executing the remaining tasks."
    return prompt.strip()


async def reconcile_todo_list(
    agent_context: AgentContext,
    rlm: RetryLanguageModel,
    messages: List[BaseMessage],
    tools: List[Tool],
) -> None:
    """Append a restated todo list to ``messages``; failures are logged only."""
    try:
        args = await _forced_call(agent_context, rlm, messages, tools, todo_list_manager_tool)
    except TaskAbortedError:
        raise
    except Exception as e:
        LOGGER.error(f"Todo list reconciliation failed: {e}")
        return
    messages.append(HumanMessage(content=build_todo_prompt(args)))
