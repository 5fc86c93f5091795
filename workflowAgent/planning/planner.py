"""Planner: task prompt -> Workflow via a streamed model call.

The plan text is parsed after every chunk so listeners can render a growing
graph (``workflow`` events with ``stream_done=False``); the complete text is
then parsed strictly into the final Workflow.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Tuple

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from workflowAgent.core.context import TaskContext
from workflowAgent.core.workflow import Workflow, parse_workflow
from workflowAgent.llm.retry import RetryLanguageModel
from workflowAgent.llm.types import (
    ErrorChunk,
    FinishChunk,
    LLMRequest,
    ReasoningDelta,
    StreamCallback,
    StreamEvent,
    TextDelta,
)
from workflowAgent.planning.prompts import get_plan_system_prompt, get_plan_user_prompt
from workflowAgent.utils.error_handler import ModelInvocationError, PlanningError, TaskAbortedError
from workflowAgent.utils.logging_utils import log_plan_created, log_prompt

LOGGER = logging.getLogger(__name__)

PLANNER_NAME = "Planner"
PLAN_MAX_TOKENS = 8192
PLAN_TEMPERATURE = 0.7
FAILED_FINISH_REASONS = ("content-filter", "error", "other")


class Planner:
    """Build and rebuild the workflow for one task."""

    def __init__(self, context: TaskContext, callback: Optional[StreamCallback] = None):
        self.context = context
        self.task_id = context.task_id
        self.callback = callback or context.callback

    async def plan(self, task_prompt: str, save_history: bool = True) -> Workflow:
        messages: List[BaseMessage] = [
            SystemMessage(content=get_plan_system_prompt(self.context)),
            HumanMessage(
                content=get_plan_user_prompt(
                    task_prompt,
                    self.context.variables.get("task_website"),
                    self.context.variables.get("plan_ext_prompt") or "",
                )
            ),
        ]
        return await self.do_plan(task_prompt, messages, save_history)

    async def replan(self, task_prompt: str, save_history: bool = True) -> Workflow:
        """Continue the previous planning conversation with a new instruction."""
        chain = self.context.chain
        if chain.plan_request is None or not chain.plan_result:
            return await self.plan(task_prompt, save_history)
        messages: List[BaseMessage] = [
            *chain.plan_request.messages,
            AIMessage(content=chain.plan_result),
            HumanMessage(content=task_prompt),
        ]
        return await self.do_plan(task_prompt, messages, save_history)

    async def do_plan(
        self,
        task_prompt: str,
        messages: List[BaseMessage],
        save_history: bool = True,
        retry_num: int = 0,
    ) -> Workflow:
        """Stream one planning exchange and parse it.

        Raises:
            TaskAbortedError: The task was aborted
            PlanningError: Every attempt failed
        """
        context = self.context
        settings = context.settings
        await context.check_aborted()
        rlm = RetryLanguageModel(context.models.llms, context.models.names_for("plan"))
        log_prompt(LOGGER, "planner", str(messages[-1].content))

        with context.step() as token:
            request = LLMRequest(
                messages=messages,
                max_tokens=PLAN_MAX_TOKENS,
                temperature=PLAN_TEMPERATURE,
                cancel_token=token,
            )
            try:
                text, thinking = await self._stream_plan(rlm, request)
                workflow = parse_workflow(self.task_id, text, True, thinking)
                workflow.validate_graph()
            except TaskAbortedError:
                raise
            except Exception as e:
                await context.check_aborted()
                if retry_num < settings.plan_max_retries:
                    LOGGER.warning(f"Planning attempt {retry_num + 1} failed, retrying: {e}")
                    await context.token.guard(asyncio.sleep(settings.plan_retry_delay))
                    return await self.do_plan(task_prompt, messages, save_history, retry_num + 1)
                raise PlanningError(f"Planning failed: {e}") from e

        if save_history:
            context.chain.plan_request = request
            context.chain.plan_result = text
        workflow.task_prompt = task_prompt.strip()

        await self._emit_workflow(workflow, stream_done=True)
        log_plan_created(LOGGER, workflow)
        return workflow

    async def _stream_plan(self, rlm: RetryLanguageModel, request: LLMRequest) -> Tuple[str, str]:
        stream_text = ""
        thinking_text = ""
        stream = await rlm.call_stream(request)
        iterator = stream.__aiter__()
        try:
            while True:
                await self.context.check_aborted()
                try:
                    chunk = await request.cancel_token.guard(iterator.__anext__())
                except StopAsyncIteration:
                    break
                if isinstance(chunk, TextDelta):
                    stream_text += chunk.delta
                elif isinstance(chunk, ReasoningDelta):
                    thinking_text += chunk.delta
                elif isinstance(chunk, ErrorChunk):
                    raise ModelInvocationError(f"Plan Error: {chunk.error}")
                elif isinstance(chunk, FinishChunk):
                    if chunk.finish_reason in FAILED_FINISH_REASONS:
                        raise ModelInvocationError(f"Plan Error: finish reason {chunk.finish_reason}")
                    continue
                else:
                    continue
                partial = parse_workflow(self.task_id, stream_text, False, thinking_text)
                if partial is not None:
                    await self._emit_workflow(partial, stream_done=False)
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()
        return stream_text, thinking_text

    async def _emit_workflow(self, workflow: Workflow, stream_done: bool) -> None:
        if self.callback is None:
            return
        await self.callback.on_message(
            StreamEvent(
                task_id=self.task_id,
                agent_name=PLANNER_NAME,
                type="workflow",
                stream_done=stream_done,
                workflow=workflow,
            ),
            None,
        )
