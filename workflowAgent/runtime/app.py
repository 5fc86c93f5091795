"""Runtime facade: plan, execute and control tasks."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

from workflowAgent.agent.base import Agent
from workflowAgent.config.settings import AgentSettings
from workflowAgent.context.compressor import ContextCompressor
from workflowAgent.core.context import TaskContext
from workflowAgent.core.workflow import Workflow
from workflowAgent.graph import build_task_graph
from workflowAgent.llm.types import ModelCatalog, StreamCallback
from workflowAgent.planning import Planner
from workflowAgent.tools.mcp.client import StdioMCPClient
from workflowAgent.utils.error_handler import TaskAbortedError, WorkflowAgentError, handle_model_error
from workflowAgent.utils.logging_utils import log_error

LOGGER = logging.getLogger(__name__)

DEFAULT_RECURSION_LIMIT = 1000


@dataclass
class TaskResult:
    task_id: str
    success: bool
    stop_reason: Literal["done", "abort", "error"]
    result: str = ""
    error: Optional[BaseException] = None


class WorkflowEngine:
    """Own the tasks of one host and drive them through the task graph.

    Args:
        settings: Execution policy handed to every task
        models: Named language models and per-phase fallback order
        agents: Agents the planner may assign nodes to
        callback: Receives every progress event of every task
        mcp_client: Default external tool client for agents without one
        compressor: Conversation compression collaborator
    """

    def __init__(
        self,
        settings: AgentSettings,
        models: ModelCatalog,
        agents: List[Agent],
        callback: Optional[StreamCallback] = None,
        mcp_client: Optional[StdioMCPClient] = None,
        compressor: Optional[ContextCompressor] = None,
    ):
        self.settings = settings
        self.models = models
        self.agents = agents
        self.callback = callback
        self.mcp_client = mcp_client
        self.compressor = compressor or ContextCompressor(settings)
        self.tasks: Dict[str, TaskContext] = {}

    # ========== Task lifecycle ==========

    async def generate(
        self,
        prompt: str,
        task_id: Optional[str] = None,
        variables: Optional[Dict[str, Any]] = None,
    ) -> Workflow:
        """Create a task and plan its workflow."""
        task_id = task_id or str(uuid.uuid4())
        context = TaskContext(
            task_id,
            self.settings,
            self.models,
            self.agents,
            callback=self.callback,
            compressor=self.compressor,
            mcp_client=self.mcp_client,
        )
        context.chain.task_prompt = prompt
        context.variables.update(variables or {})
        self.tasks[task_id] = context
        context.workflow = await Planner(context).plan(prompt)
        return context.workflow

    async def modify(self, task_id: str, modify_prompt: str) -> Workflow:
        """Revise a task's plan by continuing its planning conversation."""
        context = self.get_task(task_id)
        context.workflow = await Planner(context).replan(modify_prompt)
        return context.workflow

    async def execute(self, task_id: str) -> TaskResult:
        """Run a planned task to completion.

        Fatal failures are reported in the result instead of being raised.
        """
        context = self.get_task(task_id)
        app = build_task_graph(context=context)
        initial_state = {
            "task_id": task_id,
            "prompt": context.chain.task_prompt,
            "completed": [],
            "batch": [],
            "remaining": 0,
            "result": None,
            "replan_enabled": self.settings.replan_enabled,
            "loops": 0,
        }
        try:
            state = await app.ainvoke(initial_state, config={"recursion_limit": DEFAULT_RECURSION_LIMIT})
        except TaskAbortedError as e:
            LOGGER.info(f"Task {task_id} aborted: {e}")
            return TaskResult(task_id, False, "abort", str(e), e)
        except Exception as e:
            if context.aborted:
                return TaskResult(task_id, False, "abort", str(e), e)
            log_error(LOGGER, e, f"task {task_id}")
            message = e.user_message if isinstance(e, WorkflowAgentError) else handle_model_error(e)
            return TaskResult(task_id, False, "error", message or str(e), e)
        return TaskResult(task_id, True, "done", state.get("result") or "")

    async def run(self, prompt: str, task_id: Optional[str] = None) -> TaskResult:
        workflow = await self.generate(prompt, task_id)
        return await self.execute(workflow.task_id)

    # ========== Task control ==========

    def get_task(self, task_id: str) -> TaskContext:
        context = self.tasks.get(task_id)
        if context is None:
            raise WorkflowAgentError(f"Task {task_id} does not exist")
        return context

    def abort(self, task_id: str, reason: Optional[str] = None) -> bool:
        context = self.tasks.get(task_id)
        if context is None:
            return False
        context.abort(reason)
        return True

    def pause(self, task_id: str, paused: bool) -> bool:
        context = self.tasks.get(task_id)
        if context is None:
            return False
        context.set_pause(paused)
        return True

    def intervene(self, task_id: str, text: str) -> bool:
        """Queue a user instruction for the task's next model call."""
        context = self.tasks.get(task_id)
        if context is None:
            return False
        context.intervene(text)
        return True

    def delete_task(self, task_id: str) -> bool:
        context = self.tasks.pop(task_id, None)
        if context is None:
            return False
        context.abort("Task deleted")
        return True
