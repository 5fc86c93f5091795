"""Task orchestration graph (plan → execute → replan → finalize)."""

from .builder import build_task_graph
from .state import TaskState

__all__ = ["build_task_graph", "TaskState"]
