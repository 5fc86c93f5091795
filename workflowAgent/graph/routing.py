"""Conditional routing helpers for the task orchestration graph."""

from __future__ import annotations

import logging
from typing import Literal

from .state import TaskState
from workflowAgent.utils.logging_utils import log_routing_decision

LOGGER = logging.getLogger(__name__)


def execute_route(state: TaskState) -> Literal["execute", "replan", "finalize"]:
    """Route after an execute step.

    Returns:
        "finalize": Every workflow node has run
        "replan": A single node just finished and replanning is enabled
        "execute": Run the next ready node(s)
    """
    remaining = state.get("remaining", 0)
    batch = state.get("batch", [])

    if remaining <= 0:
        decision = "finalize"
        reason = f"All nodes executed ({len(state.get('completed', []))})"
    elif state.get("replan_enabled") and len(batch) == 1:
        decision = "replan"
        reason = f"Checking remaining {remaining} node(s) after {batch[0]}"
    else:
        decision = "execute"
        reason = f"{remaining} node(s) remaining"

    log_routing_decision(LOGGER, "execute", decision, reason)
    return decision
