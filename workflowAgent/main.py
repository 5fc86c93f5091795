"""WorkflowAgent - CLI entrypoint.

Usage:
    python -m workflowAgent.main "Summarize topic X and save it to file Y"
    python -m workflowAgent.main --mcp-config mcp_servers.yaml --mode expert "..."
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any, List, Optional

from workflowAgent.agent import Agent
from workflowAgent.config import get_settings
from workflowAgent.llm.model_resolver import build_model_catalog
from workflowAgent.llm.types import StreamEvent
from workflowAgent.runtime import WorkflowEngine
from workflowAgent.tools.mcp import load_mcp_clients, load_mcp_config
from workflowAgent.utils import setup_logging

DEFAULT_MCP_CONFIG = Path("mcp_servers.yaml")


class ConsoleCallback:
    """Print final text, tool activity and the planned workflow."""

    async def on_message(self, event: StreamEvent, agent_context: Any = None) -> None:
        if event.type == "workflow" and event.stream_done and event.workflow is not None:
            print(f"\n📋 Plan: {event.workflow.name}")
            for node in event.workflow.agents:
                depends = ", ".join(node.depends_on) or "-"
                print(f"  [{node.id}] {node.name}: {node.task} (after {depends})")
        elif event.type == "agent_start":
            print(f"\n▶ {event.agent_name} ({event.node_id})")
        elif event.type == "text" and event.stream_done:
            print(event.text)
        elif event.type == "tool_use":
            print(f"  🔧 {event.tool_name} {event.params}")
        elif event.type == "tool_result" and event.tool_result is not None and event.tool_result.is_error:
            print(f"  ⚠ {event.tool_name}: {event.tool_result.text_content()[:200]}")


def build_agents(mcp_config_path: Optional[Path]) -> List[Agent]:
    agents = [
        Agent(
            name="Assistant",
            description="General assistant that reasons and writes text answers without external tools.",
        )
    ]
    if mcp_config_path is None or not mcp_config_path.exists():
        return agents
    for server_id, client in load_mcp_clients(load_mcp_config(mcp_config_path)).items():
        agents.append(
            Agent(
                name=server_id,
                description=f"Agent that completes tasks with the tools of the '{server_id}' server.",
                mcp_client=client,
            )
        )
    return agents


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="workflowAgent", description="Plan and execute a task with agents.")
    parser.add_argument("task", help="Natural-language task to plan and execute")
    parser.add_argument("--mcp-config", type=Path, default=DEFAULT_MCP_CONFIG, help="MCP servers YAML file")
    parser.add_argument("--mode", choices=["fast", "normal", "expert"], help="Override the execution mode")
    parser.add_argument("--plan-only", action="store_true", help="Print the plan without executing it")
    return parser.parse_args(argv)


async def async_main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    logger = setup_logging(
        getattr(logging, settings.observability.log_level.upper(), logging.INFO),
        settings.observability.log_dir,
        settings.observability.log_prompt_max_length,
    )

    agent_settings = settings.agent
    if args.mode:
        agent_settings = agent_settings.model_copy(update={"mode": args.mode})

    engine = WorkflowEngine(
        agent_settings,
        build_model_catalog(settings.models),
        build_agents(args.mcp_config),
        callback=ConsoleCallback(),
    )

    workflow = await engine.generate(args.task)
    if args.plan_only:
        return 0

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, engine.abort, workflow.task_id, f"Received signal {sig.name}")
        except NotImplementedError:
            logger.debug("Signal handlers are not supported on this platform")

    result = await engine.execute(workflow.task_id)
    if result.success:
        print(f"\n✅ {result.result}")
        return 0
    print(f"\n❌ {result.stop_reason}: {result.result}")
    return 1


def main(argv: Optional[List[str]] = None) -> int:
    try:
        return asyncio.run(async_main(argv))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
