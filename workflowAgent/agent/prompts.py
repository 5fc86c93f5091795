"""Agent system / user prompts."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Dict, List

from workflowAgent.core.workflow import WorkflowAgent
from workflowAgent.tools.base import Tool
from workflowAgent.utils.message_utils import truncate_text
from workflowAgent.utils.prompt_builder import PromptBuilder

if TYPE_CHECKING:
    from workflowAgent.agent.base import Agent
    from workflowAgent.core.context import TaskContext

DEPENDENCY_RESULT_MAX_LENGTH = 4000


def current_datetime() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def has_variables(node: WorkflowAgent) -> bool:
    return "input=" in node.xml or "output=" in node.xml


def get_agent_system_prompt(
    agent: "Agent",
    node: WorkflowAgent,
    context: "TaskContext",
    tools: List[Tool],
    ext_prompt: str = "",
) -> str:
    task_prompt = context.workflow.task_prompt if context.workflow else context.chain.task_prompt
    return PromptBuilder.load_agent_system_prompt(
        agent_name=agent.name,
        description=agent.description,
        datetime=current_datetime(),
        platform=context.settings.platform,
        task_prompt=task_prompt or context.chain.task_prompt,
        node_xml=node.xml or f"<agent name=\"{node.name}\"><task>{node.task}</task></agent>",
        has_variables=has_variables(node),
        tools=tools,
        ext_prompt=ext_prompt,
    )


def get_agent_user_prompt(
    agent: "Agent",
    node: WorkflowAgent,
    context: "TaskContext",
    tools: List[Tool],
) -> str:
    dependency_results: List[Dict[str, str]] = []
    for dependency in node.depends_on:
        agent_chain = context.chain.get_agent_chain(dependency)
        if agent_chain is None or not agent_chain.agent_result:
            continue
        dependency_results.append(
            {
                "name": agent_chain.agent.name,
                "task": agent_chain.agent.task,
                "result": truncate_text(agent_chain.agent_result, DEPENDENCY_RESULT_MAX_LENGTH),
            }
        )
    return PromptBuilder.load_agent_user_prompt(dependency_results=dependency_results, task=node.task)
