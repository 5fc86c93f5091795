"""Unified error taxonomy for WorkflowAgent planning, agents and tools."""

from __future__ import annotations

import logging
from typing import Optional

LOGGER = logging.getLogger(__name__)


class WorkflowAgentError(Exception):
    """Base exception for WorkflowAgent errors."""

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message or message


class TaskAbortedError(WorkflowAgentError):
    """The task's cancellation signal fired."""

    def __init__(self, message: str = "Operation was interrupted"):
        super().__init__(message)


class ModelInvocationError(WorkflowAgentError):
    """Error during model invocation (transport failure or error chunk)."""
    pass


class ContextOverflowError(ModelInvocationError):
    """The model rejected the request because the context is too long."""
    pass


class ToolExecutionError(WorkflowAgentError):
    """Error during tool execution."""
    pass


class ConsecutiveToolFailureError(ToolExecutionError):
    """Too many tool calls failed in a row for one agent node."""

    def __init__(self, message: str, failures: int):
        super().__init__(message)
        self.failures = failures


class PlanningError(WorkflowAgentError):
    """Planning failed after exhausting its retries."""
    pass


class WorkflowParseError(WorkflowAgentError):
    """Plan text could not be parsed into a workflow."""
    pass


class WorkflowGraphError(WorkflowAgentError):
    """A workflow violates the node ordering / dependency invariant."""
    pass


class MCPError(WorkflowAgentError):
    """A tool-protocol request failed (missing, malformed or error response)."""
    pass


_OVERFLOW_MARKERS = (
    "is too long",
    "context_length",
    "maximum context length",
    "too many tokens",
    "context window",
)


def is_context_overflow(error: BaseException) -> bool:
    """Return True when an error message indicates an over-length context."""
    if isinstance(error, ContextOverflowError):
        return True
    error_str = str(error).lower()
    return any(marker in error_str for marker in _OVERFLOW_MARKERS)


def handle_model_error(error: BaseException) -> str:
    """Convert model invocation errors to user-friendly messages.

    Args:
        error: Exception raised during model invocation

    Returns:
        User-friendly error message
    """
    if isinstance(error, TaskAbortedError):
        return "Task was aborted"

    error_str = str(error).lower()

    if "rate_limit" in error_str or "429" in error_str:
        return "Too many requests, please retry later"

    if "timeout" in error_str:
        return "The model timed out, please retry"

    if is_context_overflow(error):
        return "The conversation is too long for the model"

    if "invalid_api_key" in error_str or "authentication" in error_str:
        return "Invalid API key, please check the model configuration"

    if "quota" in error_str or "insufficient" in error_str:
        return "Model quota exhausted"

    return f"Model service unavailable: {str(error)}"
