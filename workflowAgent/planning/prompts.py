"""Planner system / user prompts."""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, List, Optional

from workflowAgent.agent.prompts import current_datetime
from workflowAgent.utils.prompt_builder import PromptBuilder

if TYPE_CHECKING:
    from workflowAgent.core.context import TaskContext


def planner_agents(context: "TaskContext") -> List[Dict[str, str]]:
    return [
        {"name": agent.name, "description": agent.plan_description or agent.description}
        for agent in context.agents
    ]


def get_plan_system_prompt(context: "TaskContext") -> str:
    return PromptBuilder.load_planner_system_prompt(
        agents=planner_agents(context),
        datetime=current_datetime(),
        platform=context.settings.platform,
    )


def get_plan_user_prompt(task_prompt: str, task_website: Optional[str] = None, ext_prompt: str = "") -> str:
    return PromptBuilder.load_planner_user_prompt(
        task_prompt=task_prompt,
        task_website=task_website,
        ext_prompt=ext_prompt,
    )
