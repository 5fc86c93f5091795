"""Planning and replanning of task workflows."""

from .planner import Planner
from .replanner import check_task_replan, merge_workflow, replan_workflow

__all__ = ["Planner", "check_task_replan", "merge_workflow", "replan_workflow"]
