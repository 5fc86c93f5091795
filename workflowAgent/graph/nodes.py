"""Graph node factories bound to one TaskContext."""

from __future__ import annotations

import logging
from typing import List

from workflowAgent.core.cancellation import gather_or_cancel
from workflowAgent.core.chain import AgentChain
from workflowAgent.core.context import TaskContext
from workflowAgent.core.workflow import WorkflowAgent
from workflowAgent.graph.state import TaskState
from workflowAgent.llm.types import StreamEvent
from workflowAgent.planning import Planner, check_task_replan, replan_workflow
from workflowAgent.utils.error_handler import WorkflowAgentError
from workflowAgent.utils.logging_utils import log_node_execution

LOGGER = logging.getLogger(__name__)


def ready_nodes(context: TaskContext, completed: List[str]) -> List[WorkflowAgent]:
    """Unexecuted nodes whose dependencies have all completed."""
    done = set(completed)
    return [
        agent
        for agent in context.workflow.agents
        if agent.id not in done and all(dependency in done for dependency in agent.depends_on)
    ]


def remaining_nodes(context: TaskContext, completed: List[str]) -> int:
    done = set(completed)
    return sum(1 for agent in context.workflow.agents if agent.id not in done)


async def run_workflow_node(context: TaskContext, node: WorkflowAgent) -> str:
    """Execute one workflow node with its assigned agent."""
    agent = context.get_agent(node.name)
    if agent is None:
        raise WorkflowAgentError(f"Agent '{node.name}' is not registered")
    agent_chain = context.chain.push(AgentChain(agent=node))
    node.status = "running"
    log_node_execution(LOGGER, node, "started")
    await context.emit(
        StreamEvent(task_id=context.task_id, agent_name=node.name, node_id=node.id, type="agent_start")
    )
    try:
        result = await agent.run(context, agent_chain)
    except Exception:
        node.status = "error"
        log_node_execution(LOGGER, node, "failed")
        raise
    agent_chain.agent_result = result
    node.status = "done"
    log_node_execution(LOGGER, node, "done")
    await context.emit(
        StreamEvent(
            task_id=context.task_id,
            agent_name=node.name,
            node_id=node.id,
            type="agent_result",
            text=result,
        )
    )
    return result


def build_plan_node(*, context: TaskContext):
    async def plan_node(state: TaskState) -> TaskState:
        if context.workflow is None:
            context.workflow = await Planner(context).plan(state["prompt"])
        completed = list(state.get("completed") or [])
        return {
            "completed": completed,
            "batch": [],
            "remaining": remaining_nodes(context, completed),
        }

    return plan_node


def build_execute_node(*, context: TaskContext):
    async def execute_node(state: TaskState) -> TaskState:
        await context.check_aborted()
        completed = list(state.get("completed") or [])
        ready = ready_nodes(context, completed)
        if not ready:
            raise WorkflowAgentError(f"No executable node left in workflow {context.task_id}")
        if context.settings.agent_parallel and len(ready) > 1:
            LOGGER.info(f"Running {len(ready)} independent nodes concurrently")
            results = await gather_or_cancel(*(run_workflow_node(context, node) for node in ready))
            batch = ready
        else:
            batch = ready[:1]
            results = [await run_workflow_node(context, batch[0])]

        completed.extend(node.id for node in batch)
        return {
            "completed": completed,
            "batch": [node.id for node in batch],
            "remaining": remaining_nodes(context, completed),
            "result": results[-1],
            "loops": state.get("loops", 0) + 1,
        }

    return execute_node


def build_replan_node(*, context: TaskContext):
    async def replan_node(state: TaskState) -> TaskState:
        agent_context = context.current_agent
        if agent_context is not None and await check_task_replan(agent_context):
            await replan_workflow(agent_context)
        return {
            "batch": [],
            "remaining": remaining_nodes(context, state.get("completed") or []),
        }

    return replan_node


def build_finalize_node(*, context: TaskContext):
    async def finalize_node(state: TaskState) -> TaskState:
        LOGGER.info(
            f"Task {context.task_id} finished after {state.get('loops', 0)} execute step(s), "
            f"{len(state.get('completed') or [])} node(s) completed"
        )
        return {"result": state.get("result") or ""}

    return finalize_node
