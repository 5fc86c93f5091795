"""Factory for assembling the task orchestration state machine."""

from __future__ import annotations

import logging

from langgraph.graph import END, START, StateGraph

from workflowAgent.core.context import TaskContext
from workflowAgent.graph.nodes import (
    build_execute_node,
    build_finalize_node,
    build_plan_node,
    build_replan_node,
)
from workflowAgent.graph.routing import execute_route
from workflowAgent.graph.state import TaskState

LOGGER = logging.getLogger(__name__)


def build_task_graph(*, context: TaskContext):
    """Compose the orchestration graph for one task.

        START → plan → execute ─┬─→ finalize → END
                         ↑  ↑   │
                         │  └───┤ (next ready node(s))
                         │      ↓
                         └── replan (single node finished, replanning enabled)
                               └─→ execute | finalize

    - plan: builds the workflow unless the task already has one
    - execute: runs the next ready node, or every ready node under
      ``agent_parallel``
    - replan: asks the plan model whether the unexecuted suffix still fits
      and splices a new one when it does not
    - finalize: the task result is the last executed node's result
    """
    graph = StateGraph(TaskState)

    graph.add_node("plan", build_plan_node(context=context))
    graph.add_node("execute", build_execute_node(context=context))
    graph.add_node("replan", build_replan_node(context=context))
    graph.add_node("finalize", build_finalize_node(context=context))

    graph.add_edge(START, "plan")
    routes = {
        "execute": "execute",
        "replan": "replan",
        "finalize": "finalize",
    }
    graph.add_conditional_edges("plan", execute_route, routes)
    graph.add_conditional_edges("execute", execute_route, routes)
    graph.add_conditional_edges("replan", execute_route, routes)
    graph.add_edge("finalize", END)

    return graph.compile()
