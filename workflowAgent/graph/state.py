"""Shared state definition for the task orchestration graph."""

from __future__ import annotations

from typing import List, Optional, TypedDict


class TaskState(TypedDict, total=False):
    """Execution progress tracked across graph steps.

    The workflow itself lives on the TaskContext (the planner and replanner
    mutate it in place); the state only carries what routing needs.

        START → plan → execute ⇄ replan → finalize → END
    """

    # ========== Task ==========
    task_id: str
    prompt: str

    # ========== Execution progress ==========
    completed: List[str]   # Node ids that finished, in completion order
    batch: List[str]       # Node ids run by the last execute step
    remaining: int         # Unexecuted nodes left in the workflow
    result: Optional[str]  # Result of the last executed node

    # ========== Execution control ==========
    replan_enabled: bool
    loops: int             # Execute steps so far
