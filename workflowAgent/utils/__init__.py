"""Utilities for WorkflowAgent."""

from .logging_utils import (
    log_error,
    log_node_execution,
    log_plan_created,
    log_prompt,
    log_routing_decision,
    log_tool_call,
    log_tool_result,
    setup_logging,
)
from .message_utils import stringify_content, truncate_text
from .error_handler import (
    handle_model_error,
    is_context_overflow,
    ConsecutiveToolFailureError,
    ContextOverflowError,
    MCPError,
    ModelInvocationError,
    PlanningError,
    TaskAbortedError,
    ToolExecutionError,
    WorkflowAgentError,
    WorkflowGraphError,
    WorkflowParseError,
)

__all__ = [
    "setup_logging",
    "log_error",
    "log_node_execution",
    "log_plan_created",
    "log_prompt",
    "log_routing_decision",
    "log_tool_call",
    "log_tool_result",
    "stringify_content",
    "truncate_text",
    "handle_model_error",
    "is_context_overflow",
    "ConsecutiveToolFailureError",
    "ContextOverflowError",
    "MCPError",
    "ModelInvocationError",
    "PlanningError",
    "TaskAbortedError",
    "ToolExecutionError",
    "WorkflowAgentError",
    "WorkflowGraphError",
    "WorkflowParseError",
]
