"""Runtime facade for planning and executing tasks."""

from .app import TaskResult, WorkflowEngine

__all__ = ["TaskResult", "WorkflowEngine"]
