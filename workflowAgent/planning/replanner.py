"""Replanner: revise the unexecuted suffix of a running workflow.

``check_task_replan`` asks the plan model, through a forced function call,
whether the remaining nodes still fit the task given what has executed so
far. ``replan_workflow`` re-runs planning for the unexecuted part and splices
the result after the current node with ``merge_workflow``.
"""

from __future__ import annotations

import json
import logging
from typing import Dict, List

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage

from workflowAgent.core.chain import AgentChain
from workflowAgent.core.context import AgentContext
from workflowAgent.core.workflow import Workflow, node_id, node_sequence
from workflowAgent.llm.retry import RetryLanguageModel
from workflowAgent.llm.types import LLMRequest, StreamEvent
from workflowAgent.planning.planner import Planner
from workflowAgent.utils.error_handler import TaskAbortedError
from workflowAgent.utils.message_utils import stringify_content, truncate_text

LOGGER = logging.getLogger(__name__)

CHECK_TASK_STATUS = "check_task_status"

REPLAN_CHECK_PROMPT = """# Task Execution Status
{execution}

# Task Replan Check
Please review the plan for unexecuted tasks based on the results of partially executed tasks, and check whether it still meets the requirements of the current user task.
If after executing some subtasks it is found that the previous plan has issues or is no longer the optimal solution, then the unexecuted task nodes need to be replanned; otherwise, replanning is not necessary."""

REPLAN_PROMPT = """# Task Execution Status
{execution}

# Replan
The previous plan is no longer suitable for the current task.
Please reformulate the plan for unexecuted tasks based on the results of partially executed tasks to meet the requirements of the current task.
Please do not output nodes that have already been executed. The new plan is an incremental update to the unexecuted plan nodes, and can use the results and variables from previously executed tasks."""

CHECK_TASK_STATUS_SCHEMA = {
    "type": "function",
    "function": {
        "name": CHECK_TASK_STATUS,
        "description": (
            "Check the task status, and based on the results of partially executed tasks, "
            "examine whether the unexecuted task nodes need to be replanned."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "thinking": {
                    "type": "string",
                    "description": "Output the thinking process, analyzing whether the unexecuted "
                    "task nodes need to be replanned.(100 words or less)",
                },
                "replan": {
                    "type": "boolean",
                    "description": "Whether replanning of unexecuted task nodes is needed. If the existing "
                    "unexecuted task nodes can meet the task requirements, replanning is not necessary.",
                },
            },
            "required": ["thinking", "replan"],
        },
    },
}


def _plan_history(agent_context: AgentContext, prompt: str) -> List[BaseMessage]:
    chain = agent_context.context.chain
    return [
        *chain.plan_request.messages,
        AIMessage(content=chain.plan_result),
        HumanMessage(content=prompt),
    ]


async def check_task_replan(agent_context: AgentContext) -> bool:
    """Return True when the unexecuted nodes should be replanned.

    Any failure (including a missing plan history) answers False.
    """
    context = agent_context.context
    chain = context.chain
    if chain.plan_request is None or not chain.plan_result:
        return False
    try:
        rlm = RetryLanguageModel(context.models.llms, context.models.names_for("plan"))
        prompt = REPLAN_CHECK_PROMPT.format(execution=get_agent_execution_prompt(agent_context))
        with context.step() as token:
            result = await rlm.call(
                LLMRequest(
                    messages=_plan_history(agent_context, prompt),
                    tools=[CHECK_TASK_STATUS_SCHEMA],
                    tool_choice=CHECK_TASK_STATUS,
                    max_tokens=512,
                    temperature=0.7,
                    cancel_token=token,
                )
            )
        if not result.tool_calls:
            LOGGER.warning("Replan check returned no function call")
            return False
        args = result.tool_calls[0].get("args") or {}
        LOGGER.info(f"Replan check: replan={args.get('replan')} ({args.get('thinking', '')})")
        return bool(args.get("replan"))
    except TaskAbortedError:
        raise
    except Exception as e:
        LOGGER.error(f"Replan check failed: {e}")
        return False


async def replan_workflow(agent_context: AgentContext) -> Workflow:
    """Replace every node after the current one with a freshly planned suffix."""
    context = agent_context.context
    workflow = context.workflow
    current_index = max(workflow.index_of(agent_context.node.id), 0)

    class _MergeCallback:
        async def on_message(self, event: StreamEvent, _agent_context=None) -> None:
            if event.type != "workflow" or event.workflow is None:
                return
            merge_workflow(workflow, event.workflow.model_copy(deep=True), current_index)
            if context.callback is not None:
                await context.callback.on_message(
                    StreamEvent(
                        task_id=event.task_id,
                        agent_name=event.agent_name,
                        type="workflow",
                        stream_done=event.stream_done,
                        workflow=workflow,
                    ),
                    None,
                )

    planner = Planner(context, _MergeCallback())
    prompt = REPLAN_PROMPT.format(execution=get_agent_execution_prompt(agent_context))
    if context.chain.plan_request is not None and context.chain.plan_result:
        new_workflow = await planner.do_plan("", _plan_history(agent_context, prompt), True)
    else:
        new_workflow = await planner.plan(prompt, True)

    merge_workflow(workflow, new_workflow, current_index)
    workflow.modified = True
    LOGGER.info(f"Workflow replanned after node {agent_context.node.id}: {len(workflow.agents)} nodes")
    return workflow


def _shift_id(dependency: str, offset: int) -> str:
    prefix, _, _ = dependency.rpartition("-")
    index = node_sequence(dependency) + offset
    return f"{prefix}-{index:02d}" if prefix else f"{index:02d}"


def merge_workflow(workflow: Workflow, new_workflow: Workflow, current_index: int) -> None:
    """Splice ``new_workflow``'s nodes after position ``current_index``.

    Retained nodes are untouched. Suffix ids continue the sequence from the
    splice point, their dependencies shift by the same offset, and the first
    suffix node depends on the last retained node.
    """
    workflow.name = new_workflow.name
    workflow.thought = new_workflow.thought
    offset = current_index + 1
    del workflow.agents[offset:]
    for i, agent in enumerate(new_workflow.agents):
        agent.id = node_id(workflow.task_id, i + offset)
        if i == 0:
            agent.depends_on = [workflow.agents[-1].id] if workflow.agents else []
        else:
            agent.depends_on = [_shift_id(dependency, offset) for dependency in agent.depends_on]
        workflow.agents.append(agent)
    workflow.xml = new_workflow.xml


# ========== Execution status ==========


def get_agent_execution_prompt(agent_context: AgentContext) -> str:
    """Describe every workflow node as executed, executing or not started."""
    context = agent_context.context
    agent_map: Dict[str, AgentChain] = {}
    for agent_chain in context.chain.agents:
        agent_map[agent_chain.agent.id] = agent_chain

    prompt = ""
    before = True
    current_id = agent_context.node.id
    for agent in context.workflow.agents:
        agent_chain = agent_map.get(agent.id)
        if agent.id == current_id:
            before = False
        header = f"## {agent.name} Agent: {agent.task}\n"
        if agent_chain is not None and agent_chain.agent_result and before:
            prompt += f"{header}Executed, execution result:\n{agent_chain.agent_result}\n\n"
        elif agent_chain is not None and agent_chain.agent_request is not None:
            progress = "\n\n".join(get_execution_messages(agent_chain.agent_request.messages))
            prompt += f"{header}Currently executing, execution progress:\n{progress}\n\n"
        else:
            prompt += f"{header}Not started execution.\n\n"
    return prompt.strip()


def get_execution_messages(messages: List[BaseMessage]) -> List[str]:
    """Condense a node conversation into short status lines."""
    contents: List[str] = []
    for i, message in enumerate(messages):
        if isinstance(message, HumanMessage):
            text = stringify_content(message.content)
            if text:
                contents.append("User: " + truncate_text(text, 2000 if i < 3 else 500))
        elif isinstance(message, AIMessage):
            text = stringify_content(message.content)
            if text:
                contents.append("Assistant: " + truncate_text(text, 500))
            for call in message.tool_calls:
                params = json.dumps(call.get("args") or {}, ensure_ascii=False)
                contents.append(f"Call `{call.get('name')}` Tool Params: {params}")
        elif isinstance(message, ToolMessage):
            result = json.dumps(message.content, ensure_ascii=False)
            contents.append(f"Call `{message.name}` Tool Result: {truncate_text(result, 500)}")
    return contents
