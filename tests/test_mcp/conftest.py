"""Pytest fixtures for MCP tests."""

import sys
from pathlib import Path

import pytest

from workflowAgent.tools.mcp import StdioMCPClient


@pytest.fixture
def test_server_path():
    """Path to the JSON-lines test server."""
    return Path(__file__).parent.parent / "mcp_servers" / "jsonl_stdio_server.py"


@pytest.fixture
def test_mcp_config(test_server_path):
    """Test MCP configuration."""
    return {
        "servers": {
            "test_stdio": {
                "command": sys.executable,
                "args": [str(test_server_path)],
                "enabled": True,
                "env": {"TEST_MODE": "1"},
            },
            "disabled_server": {
                "command": sys.executable,
                "args": [str(test_server_path)],
                "enabled": False,
            },
        }
    }


@pytest.fixture
async def client(test_server_path):
    """A connected client; closed after the test."""
    client = StdioMCPClient(sys.executable, [str(test_server_path)], server_id="test_stdio")
    await client.connect()
    yield client
    await client.close()
