"""JSON-RPC over stdio client for external tool processes.

Requests are written to the child's stdin as one JSON object per line::

    {"jsonrpc": "2.0", "id": "<uuid>", "method": "tools/call", "params": {...}}

A background reader consumes stdout line by line. Lines that are not JSON
objects (banners, debug prints) are ignored. A response is matched to its
request through the pending map (id -> future); the entry is removed on
arrival, so a duplicate response for the same id finds nothing and is
dropped.
"""

import asyncio
import json
import logging
import os
import uuid
from typing import Any, Dict, List, Optional

from mcp.types import (
    LATEST_PROTOCOL_VERSION,
    CallToolResult,
    ImageContent,
    ListToolsResult,
    TextContent,
    Tool as MCPToolSchema,
)

from workflowAgent.core.cancellation import CancellationToken
from workflowAgent.llm.types import ToolResult
from workflowAgent.utils.error_handler import MCPError

LOGGER = logging.getLogger(__name__)

STREAM_LIMIT = 16 * 1024 * 1024


def _resolve_env(env: Dict[str, str]) -> Dict[str, str]:
    """Merge with os.environ, expanding ``${VAR}`` references."""
    full_env = os.environ.copy()
    for key, value in env.items():
        value = str(value)
        if value.startswith("${") and value.endswith("}"):
            full_env[key] = os.environ.get(value[2:-1], "")
        else:
            full_env[key] = value
    return full_env


class StdioMCPClient:
    """Tool-protocol client talking to a subprocess over stdin/stdout."""

    def __init__(
        self,
        command: str,
        args: Optional[List[str]] = None,
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None,
        server_id: Optional[str] = None,
        handshake: bool = True,
    ):
        self.command = command
        self.args = args or []
        self.env = env or {}
        self.cwd = cwd
        self.server_id = server_id or command
        self.handshake = handshake
        self.server_info: Optional[Dict[str, Any]] = None

        self._process: Optional[asyncio.subprocess.Process] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._stderr_task: Optional[asyncio.Task] = None
        self._pending: Dict[str, asyncio.Future] = {}
        self._write_lock = asyncio.Lock()

    # ========== Lifecycle ==========

    async def connect(self, token: Optional[CancellationToken] = None) -> None:
        """Spawn the process and start the response listener."""
        if self.is_connected():
            return

        LOGGER.debug(f"Starting stdio tool server '{self.server_id}': {self.command} {' '.join(self.args)}")
        self._process = await asyncio.create_subprocess_exec(
            self.command,
            *self.args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=_resolve_env(self.env),
            cwd=self.cwd,
            limit=STREAM_LIMIT,
        )
        self._reader_task = asyncio.create_task(self._read_stdout())
        self._stderr_task = asyncio.create_task(self._read_stderr())

        if self.handshake:
            result = await self._request(
                "initialize",
                {
                    "protocolVersion": LATEST_PROTOCOL_VERSION,
                    "capabilities": {},
                    "clientInfo": {"name": "workflow-agent", "version": "0.1.0"},
                },
                token,
            )
            self.server_info = result.get("serverInfo") if isinstance(result, dict) else None
            await self._write({"jsonrpc": "2.0", "method": "notifications/initialized"})

        LOGGER.info(f"✓ Connected to tool server '{self.server_id}' (pid {self._process.pid})")

    def is_connected(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def close(self) -> None:
        """Terminate the process and fail every pending request."""
        process = self._process
        self._process = None

        for task in (self._reader_task, self._stderr_task):
            if task is not None:
                task.cancel()
        self._reader_task = None
        self._stderr_task = None
        self._fail_pending(MCPError(f"Tool server '{self.server_id}' closed"))

        if process is None or process.returncode is not None:
            return
        try:
            process.terminate()
            await asyncio.wait_for(process.wait(), timeout=5.0)
        except asyncio.TimeoutError:
            LOGGER.warning(f"Tool server '{self.server_id}' did not exit, killing it")
            process.kill()
            await process.wait()
        except ProcessLookupError:
            pass
        LOGGER.debug(f"✓ Closed tool server '{self.server_id}'")

    # ========== Protocol methods ==========

    async def list_tools(
        self,
        params: Optional[Dict[str, Any]] = None,
        token: Optional[CancellationToken] = None,
    ) -> List[MCPToolSchema]:
        result = await self._request("tools/list", params or {}, token)
        return ListToolsResult.model_validate(result).tools

    async def call_tool(
        self,
        params: Dict[str, Any],
        token: Optional[CancellationToken] = None,
    ) -> ToolResult:
        """Invoke ``tools/call``; params carry ``name`` and ``arguments``."""
        result = await self._request("tools/call", params, token)
        parsed = CallToolResult.model_validate(result)
        content = []
        for item in parsed.content:
            if isinstance(item, (TextContent, ImageContent)):
                content.append(item)
            else:
                content.append(TextContent(type="text", text=item.model_dump_json(exclude_none=True)))
        return ToolResult(content=content, is_error=parsed.isError)

    # ========== Transport ==========

    async def _write(self, payload: Dict[str, Any]) -> None:
        if not self.is_connected() or self._process.stdin is None:
            raise MCPError(f"Tool server '{self.server_id}' is not connected")
        line = json.dumps(payload, ensure_ascii=False) + "\n"
        async with self._write_lock:
            self._process.stdin.write(line.encode("utf-8"))
            await self._process.stdin.drain()

    async def _request(
        self,
        method: str,
        params: Dict[str, Any],
        token: Optional[CancellationToken] = None,
    ) -> Any:
        if token is not None:
            token.raise_if_cancelled()
        request_id = str(uuid.uuid4())
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._write({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params})
            if token is not None:
                message = await token.guard(future)
            else:
                message = await future
        finally:
            self._pending.pop(request_id, None)

        if not message:
            raise MCPError(f"MCP {method} error: no response")
        error = message.get("error")
        if error:
            detail = error.get("message", json.dumps(error)) if isinstance(error, dict) else str(error)
            raise MCPError(f"MCP {method} error: {detail}")
        if "result" not in message:
            raise MCPError(f"MCP {method} error: no response")
        result = message["result"]
        if isinstance(result, dict) and result.get("isError"):
            raise MCPError(f"MCP {method} error: {_result_text(result)}")
        return result

    def _handle_line(self, line: str) -> None:
        line = line.strip()
        if not line.startswith("{"):
            if line:
                LOGGER.debug(f"[{self.server_id}] ignoring non-JSON output: {line[:200]}")
            return
        try:
            message = json.loads(line)
        except json.JSONDecodeError as e:
            LOGGER.warning(f"[{self.server_id}] malformed JSON output ignored: {e}")
            return
        if not isinstance(message, dict) or message.get("id") is None:
            return

        future = self._pending.pop(str(message["id"]), None)
        if future is None:
            LOGGER.debug(f"[{self.server_id}] no pending request for response id {message['id']}")
            return
        if not future.done():
            future.set_result(message)

    async def _read_stdout(self) -> None:
        process = self._process
        try:
            while True:
                raw = await process.stdout.readline()
                if not raw:
                    break
                self._handle_line(raw.decode("utf-8", errors="replace"))
        except (ValueError, asyncio.LimitOverrunError) as e:
            LOGGER.error(f"[{self.server_id}] stdout read failed: {e}")
        finally:
            self._fail_pending(MCPError(f"Tool server '{self.server_id}' exited"))

    async def _read_stderr(self) -> None:
        process = self._process
        while True:
            raw = await process.stderr.readline()
            if not raw:
                return
            LOGGER.debug(f"[{self.server_id}] stderr: {raw.decode('utf-8', errors='replace').rstrip()}")

    def _fail_pending(self, error: Exception) -> None:
        pending = list(self._pending.values())
        self._pending.clear()
        for future in pending:
            if not future.done():
                future.set_exception(error)


def _result_text(result: Dict[str, Any]) -> str:
    parts = [
        item.get("text", "")
        for item in result.get("content") or []
        if isinstance(item, dict) and item.get("type") == "text"
    ]
    return "\n".join(parts) or "tool returned an error"
