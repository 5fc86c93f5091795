"""Per-task and per-agent execution context."""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional

from langchain_core.messages import BaseMessage

from workflowAgent.config.settings import AgentSettings
from workflowAgent.core.cancellation import CancellationToken
from workflowAgent.core.chain import AgentChain, Chain
from workflowAgent.core.workflow import Workflow
from workflowAgent.llm.types import ModelCatalog, StreamCallback, StreamEvent

if TYPE_CHECKING:
    from workflowAgent.agent.base import Agent
    from workflowAgent.context.compressor import ContextCompressor
    from workflowAgent.tools.mcp.client import StdioMCPClient

LOGGER = logging.getLogger(__name__)


class TaskContext:
    """Everything one task shares across its planner and agent nodes.

    Settings arrive explicitly; nothing here reads process-wide state.
    """

    def __init__(
        self,
        task_id: str,
        settings: AgentSettings,
        models: ModelCatalog,
        agents: List["Agent"],
        chain: Optional[Chain] = None,
        callback: Optional[StreamCallback] = None,
        compressor: Optional["ContextCompressor"] = None,
        mcp_client: Optional["StdioMCPClient"] = None,
    ):
        self.task_id = task_id
        self.settings = settings
        self.models = models
        self.agents = agents
        self.chain = chain or Chain()
        self.callback = callback
        self.compressor = compressor
        self.mcp_client = mcp_client

        self.workflow: Optional[Workflow] = None
        self.variables: Dict[str, Any] = {}
        self.conversation: List[str] = []
        self.token = CancellationToken()
        self.agent_contexts: List["AgentContext"] = []
        self.current_agent: Optional["AgentContext"] = None

        self._paused = False
        self._resumed = asyncio.Event()
        self._resumed.set()

    # ========== Cancellation / pause ==========

    @property
    def aborted(self) -> bool:
        return self.token.cancelled

    @property
    def paused(self) -> bool:
        return self._paused

    async def check_aborted(self) -> None:
        """Raise if the task was aborted; block while it is paused."""
        self.token.raise_if_cancelled()
        while self._paused:
            await self.token.guard(self._resumed.wait())
        self.token.raise_if_cancelled()

    def abort(self, reason: Optional[str] = None) -> None:
        LOGGER.info(f"Aborting task {self.task_id}: {reason or 'requested'}")
        self.token.cancel(reason)
        for agent_context in self.agent_contexts:
            agent_context.variables.clear()

    def set_pause(self, paused: bool) -> None:
        self._paused = paused
        if paused:
            self._resumed.clear()
        else:
            self._resumed.set()

    @contextmanager
    def step(self) -> Iterator[CancellationToken]:
        """Child token for one model call, released when the call ends."""
        token = self.token.child()
        try:
            yield token
        finally:
            token.detach()

    # ========== Intervention ==========

    def intervene(self, text: str) -> None:
        self.conversation.append(text)

    def drain_conversation(self) -> List[str]:
        queued = [text for text in self.conversation if text]
        self.conversation.clear()
        return queued

    # ========== Lookup ==========

    def get_agent(self, name: str) -> Optional["Agent"]:
        for agent in self.agents:
            if agent.name == name:
                return agent
        return None

    async def emit(self, event: StreamEvent, agent_context: Optional["AgentContext"] = None) -> None:
        if self.callback is not None:
            await self.callback.on_message(event, agent_context)


class AgentContext:
    """State owned by one executing agent node."""

    def __init__(self, context: TaskContext, agent: "Agent", agent_chain: AgentChain):
        self.context = context
        self.agent = agent
        self.agent_chain = agent_chain
        self.variables: Dict[str, Any] = {}
        self.consecutive_error_num = 0
        self.messages: Optional[List[BaseMessage]] = None
        context.agent_contexts.append(self)

    @property
    def node(self):
        return self.agent_chain.agent
