"""Expose tools discovered on an external tool server through the Tool contract."""

import logging
from typing import TYPE_CHECKING, Any, Dict, List

from mcp.types import Tool as MCPToolSchema

from workflowAgent.llm.types import ToolResult
from workflowAgent.tools.base import Tool

if TYPE_CHECKING:
    from workflowAgent.core.context import AgentContext
    from .client import StdioMCPClient

LOGGER = logging.getLogger(__name__)


class MCPTool(Tool):
    """
    Tool backed by a ``tools/call`` request on a StdioMCPClient.

    The request carries the call arguments plus an ``extInfo`` block
    identifying the task and node, so the server can scope its state.
    """

    def __init__(self, schema: MCPToolSchema, client: "StdioMCPClient"):
        self.schema = schema
        self.client = client
        self.name = schema.name
        self.description = schema.description or f"Tool '{schema.name}' from server '{client.server_id}'"
        self.parameters = schema.inputSchema or {"type": "object", "properties": {}}

    async def execute(self, args: Dict[str, Any], agent_context: "AgentContext") -> ToolResult:
        context = agent_context.context
        LOGGER.debug(f"Executing external tool: {self.name} (server: {self.client.server_id})")
        return await self.client.call_tool(
            {
                "name": self.name,
                "arguments": args,
                "extInfo": {
                    "taskId": context.task_id,
                    "nodeId": agent_context.node.id,
                    "environment": context.settings.platform,
                    "agent_name": agent_context.agent.name,
                },
            },
            token=context.token,
        )


def wrap_mcp_tools(schemas: List[MCPToolSchema], client: "StdioMCPClient") -> List[Tool]:
    return [MCPTool(schema, client) for schema in schemas]
