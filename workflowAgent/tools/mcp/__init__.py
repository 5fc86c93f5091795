"""External tool servers over JSON-RPC stdio."""

from .client import StdioMCPClient
from .loader import load_mcp_clients, load_mcp_config
from .wrapper import MCPTool, wrap_mcp_tools

__all__ = [
    "StdioMCPClient",
    "MCPTool",
    "wrap_mcp_tools",
    "load_mcp_config",
    "load_mcp_clients",
]
