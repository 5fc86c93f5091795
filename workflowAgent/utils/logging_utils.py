"""Logging utilities for WorkflowAgent."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

ROOT_LOGGER_NAME = "workflowAgent"
_prompt_max_length = 500


def setup_logging(
    level: int = logging.INFO,
    log_dir: Optional[str] = "logs",
    prompt_max_length: int = 500,
) -> logging.Logger:
    """Setup logging configuration for WorkflowAgent.

    Args:
        level: Logging level for the file handler (default: INFO)
        log_dir: Directory for the session log file; None or "" disables it
        prompt_max_length: Truncation length used by log_prompt

    Returns:
        Configured logger instance
    """
    global _prompt_max_length
    _prompt_max_length = prompt_max_length

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)  # Capture all child logs, handlers filter
    logger.propagate = False

    logger.handlers = []

    log_file = None
    if log_dir:
        logs_path = Path(log_dir)
        logs_path.mkdir(parents=True, exist_ok=True)
        log_file = logs_path / f"workflow_agent_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_formatter = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(console_handler)

    logger.info("=" * 80)
    logger.info("WorkflowAgent session started")
    if log_file:
        logger.info(f"Log file: {log_file}")
    logger.info("=" * 80)

    return logger


def _preview(value: Any, limit: int = 500) -> str:
    text = value if isinstance(value, str) else str(value)
    if len(text) > limit:
        return text[:limit] + "... (truncated)"
    return text


def log_tool_call(logger: logging.Logger, tool_name: str, args: Dict[str, Any]) -> None:
    """Log tool invocation.

    Args:
        logger: Logger instance
        tool_name: Name of the tool being called
        args: Tool arguments
    """
    logger.info(f"Tool call: {tool_name}")
    try:
        logger.debug(f"  Arguments: {json.dumps(args, ensure_ascii=False, indent=2)}")
    except (TypeError, ValueError):
        logger.debug(f"  Arguments: {args!r}")


def log_tool_result(logger: logging.Logger, tool_name: str, result: Any, success: bool = True) -> None:
    """Log tool execution result.

    Args:
        logger: Logger instance
        tool_name: Name of the tool
        result: Tool execution result
        success: Whether the tool executed successfully
    """
    status = "✓ Success" if success else "✗ Failed"
    logger.info(f"Tool result: {tool_name} - {status}")
    logger.debug(f"  Result: {_preview(result)}")


def log_error(logger: logging.Logger, error: BaseException, context: str = "") -> None:
    """Log error with context.

    Args:
        logger: Logger instance
        error: Exception instance
        context: Additional context about where the error occurred
    """
    logger.error(f"Error occurred: {type(error).__name__}: {str(error)}")
    if context:
        logger.error(f"  Context: {context}")
    logger.debug("Full traceback:", exc_info=error)


def log_prompt(logger: logging.Logger, phase: str, prompt: str, max_length: Optional[int] = None) -> None:
    """Log a prompt being sent to the model (truncated).

    Args:
        logger: Logger instance
        phase: Phase name (planner/agent/replan)
        prompt: Prompt content
        max_length: Truncation length (default: the one given to setup_logging)
    """
    logger.debug(f"Prompt for {phase}:\n{_preview(prompt, max_length or _prompt_max_length)}")


def log_routing_decision(logger: logging.Logger, from_node: str, decision: str, reason: str = "") -> None:
    """Log routing decision.

    Args:
        logger: Logger instance
        from_node: Source node making the decision
        decision: Routing destination
        reason: Reason for the routing decision
    """
    logger.info(f"Routing decision from {from_node}: → {decision}")
    if reason:
        logger.info(f"  → Reason: {reason}")


def log_plan_created(logger: logging.Logger, workflow: Any) -> None:
    """Log plan creation details.

    Args:
        logger: Logger instance
        workflow: Workflow instance
    """
    logger.info(f"\n{'='*80}")
    logger.info("Plan created:")
    logger.info(f"  Name: {getattr(workflow, 'name', 'N/A')}")
    agents = getattr(workflow, "agents", [])
    logger.info(f"  Total nodes: {len(agents)}")
    for agent in agents:
        logger.info(f"  Node {agent.id}:")
        logger.info(f"    - Agent: {agent.name}")
        logger.info(f"    - Task: {agent.task}")
        logger.info(f"    - Depends on: {agent.depends_on}")
    logger.info(f"{'='*80}\n")


def log_node_execution(logger: logging.Logger, node: Any, status: str) -> None:
    """Log a workflow node transition (start / done / error).

    Args:
        logger: Logger instance
        node: WorkflowAgent instance
        status: Transition label
    """
    logger.info(f"Node {node.id} ({node.name}) {status}: {_preview(node.task, 100)}")
