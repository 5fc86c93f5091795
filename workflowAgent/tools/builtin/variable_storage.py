"""Variable storage tool: share named values between agent nodes of one task."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Dict

from workflowAgent.llm.types import ToolResult
from workflowAgent.tools.base import Tool

if TYPE_CHECKING:
    from workflowAgent.core.context import AgentContext

TOOL_NAME = "variable_storage"


class VariableStorageTool(Tool):
    """Read, write and list entries of the task variable store.

    Attached automatically to nodes whose steps declare ``input=`` or
    ``output=`` variables.
    """

    name = TOOL_NAME
    description = (
        "Used for storing, reading and retrieving variable data shared between agents. "
        "Use write_variable to save a result under a name declared in `output`, "
        "read_variable to load values declared in `input`, and list_all_variable "
        "to see which names exist."
    )
    parameters = {
        "type": "object",
        "properties": {
            "operation": {
                "type": "string",
                "enum": ["read_variable", "write_variable", "list_all_variable"],
            },
            "name": {
                "type": "string",
                "description": "Variable name; comma-separated names are allowed for read_variable",
            },
            "value": {
                "type": "string",
                "description": "Value to store, required for write_variable",
            },
        },
        "required": ["operation"],
    }
    supports_parallel_calls = False

    async def execute(self, args: Dict[str, Any], agent_context: "AgentContext") -> ToolResult:
        variables = agent_context.context.variables
        operation = args.get("operation")

        if operation == "list_all_variable":
            return ToolResult.text(json.dumps(sorted(variables.keys()), ensure_ascii=False))

        name = (args.get("name") or "").strip()
        if not name:
            return ToolResult.error("Error: 'name' is required")

        if operation == "read_variable":
            values = {}
            for key in (part.strip() for part in name.split(",")):
                if key:
                    values[key] = variables.get(key)
            if len(values) == 1:
                value = next(iter(values.values()))
                if value is None:
                    return ToolResult.text(f"Variable '{name}' is not set")
                return ToolResult.text(value if isinstance(value, str) else json.dumps(value, ensure_ascii=False))
            return ToolResult.text(json.dumps(values, ensure_ascii=False))

        if operation == "write_variable":
            if "value" not in args:
                return ToolResult.error("Error: 'value' is required for write_variable")
            variables[name] = args["value"]
            return ToolResult.text(f"Variable '{name}' saved")

        return ToolResult.error(f"Error: unknown operation '{operation}'")
