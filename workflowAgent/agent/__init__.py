"""Agent execution loop, hooks and streaming assembler."""

from .base import Agent, UNFINISHED_RESULT
from .hooks import AgentHooks, VisualFeedbackHooks

__all__ = ["Agent", "AgentHooks", "VisualFeedbackHooks", "UNFINISHED_RESULT"]
