"""Top-level package exports for workflowAgent."""

from .agent import Agent, AgentHooks, VisualFeedbackHooks
from .runtime import TaskResult, WorkflowEngine

__all__ = ["Agent", "AgentHooks", "VisualFeedbackHooks", "TaskResult", "WorkflowEngine"]
