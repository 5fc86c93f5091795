"""Configuration loader for external tool servers.

``mcp_servers.yaml`` layout::

    servers:
      filesystem:
        command: npx
        args: ["-y", "@modelcontextprotocol/server-filesystem", "./workspace"]
        env:
          API_TOKEN: ${API_TOKEN}
        enabled: true
"""

import logging
from pathlib import Path
from typing import Dict

import yaml

from .client import StdioMCPClient

LOGGER = logging.getLogger(__name__)


def load_mcp_config(config_path: Path) -> dict:
    """
    Load tool server configuration from a YAML file.

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is invalid
    """
    if not config_path.exists():
        raise FileNotFoundError(f"MCP config not found: {config_path}")

    with open(config_path, encoding="utf-8") as f:
        config = yaml.safe_load(f)

    if not config:
        return {"servers": {}}

    return config


def load_mcp_clients(config: dict) -> Dict[str, StdioMCPClient]:
    """
    Create one (not yet connected) client per enabled server.

    Servers are spawned lazily by the agent that uses them.
    """
    clients: Dict[str, StdioMCPClient] = {}
    for server_id, server_cfg in (config.get("servers") or {}).items():
        if not server_cfg.get("enabled", True):
            LOGGER.debug(f"  Skipping disabled MCP server: {server_id}")
            continue
        command = server_cfg.get("command")
        if not command:
            LOGGER.warning(f"  MCP server '{server_id}' has no command, skipping")
            continue
        clients[server_id] = StdioMCPClient(
            command=command,
            args=[str(arg) for arg in server_cfg.get("args", [])],
            env={k: str(v) for k, v in (server_cfg.get("env") or {}).items()},
            cwd=server_cfg.get("cwd"),
            server_id=server_id,
            handshake=server_cfg.get("handshake", True),
        )
        LOGGER.info(f"    ✓ Registered MCP server: {server_id}")
    return clients
