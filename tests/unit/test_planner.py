"""Tests for the streaming planner."""

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from workflowAgent.agent import Agent
from workflowAgent.llm.types import FinishChunk, TextDelta
from workflowAgent.planning import Planner
from workflowAgent.planning.planner import PLAN_MAX_TOKENS, PLANNER_NAME
from workflowAgent.utils.error_handler import PlanningError, TaskAbortedError
from fakes import RecordingCallback, ScriptedModel, make_settings, make_task_context, plan_xml, text_turn

PLAN = plan_xml(("Browser", "Collect facts", ""), ("Writer", "Write the report", "0"))
AGENTS = [
    Agent("Browser", "Browses the web", plan_description="Web research agent"),
    Agent("Writer", "Writes documents"),
]


def _planner(streams, **settings):
    model = ScriptedModel(streams=streams)
    callback = RecordingCallback()
    context = make_task_context(model, make_settings(**settings), AGENTS, callback)
    return model, callback, Planner(context)


class TestPlan:
    @pytest.mark.asyncio
    async def test_plan_builds_workflow(self):
        model, callback, planner = _planner([text_turn(PLAN)])

        workflow = await planner.plan("  Research X and write a report  ")

        assert workflow.name == "Test plan"
        assert [a.name for a in workflow.agents] == ["Browser", "Writer"]
        assert workflow.agents[0].depends_on == []
        assert workflow.agents[1].depends_on == ["task1-00"]
        assert workflow.task_prompt == "Research X and write a report"

        request = model.requests[0]
        assert request.max_tokens == PLAN_MAX_TOKENS
        assert isinstance(request.messages[0], SystemMessage)
        assert "Web research agent" in request.messages[0].content
        assert "Writes documents" in request.messages[0].content
        assert "Research X and write a report" in request.messages[1].content

    @pytest.mark.asyncio
    async def test_partial_and_final_events(self):
        _, callback, planner = _planner([text_turn(PLAN)])

        await planner.plan("task")

        events = callback.of_type("workflow")
        assert all(e.agent_name == PLANNER_NAME for e in events)
        assert [e.stream_done for e in events].count(True) == 1
        assert events[-1].stream_done
        partial = [e for e in events if not e.stream_done]
        assert partial
        # the growing graph never shrinks
        sizes = [len(e.workflow.agents) for e in partial]
        assert sizes == sorted(sizes)

    @pytest.mark.asyncio
    async def test_history_saved(self):
        _, _, planner = _planner([text_turn(PLAN)])

        await planner.plan("task")

        chain = planner.context.chain
        assert chain.plan_result == PLAN
        assert chain.plan_request is not None

    @pytest.mark.asyncio
    async def test_history_not_saved_on_request(self):
        _, _, planner = _planner([text_turn(PLAN)])

        await planner.plan("task", save_history=False)

        assert planner.context.chain.plan_request is None

    @pytest.mark.asyncio
    async def test_task_website_and_extra_prompt(self):
        model, _, planner = _planner([text_turn(PLAN)])
        planner.context.variables.update(task_website="https://example.com", plan_ext_prompt="Be brief.")

        await planner.plan("task")

        user_prompt = model.requests[0].messages[1].content
        assert "https://example.com" in user_prompt
        assert "Be brief." in user_prompt


class TestPlanRetries:
    @pytest.mark.asyncio
    async def test_unparseable_output_is_retried(self):
        model, _, planner = _planner([text_turn("I cannot plan"), text_turn(PLAN)], plan_max_retries=1)

        workflow = await planner.plan("task")

        assert len(workflow.agents) == 2
        assert len(model.requests) == 2

    @pytest.mark.asyncio
    async def test_failed_finish_reason_is_retried(self):
        filtered = [TextDelta(id="t", delta=PLAN), FinishChunk(finish_reason="content-filter")]
        model, _, planner = _planner([filtered, text_turn(PLAN)], plan_max_retries=1)

        await planner.plan("task")

        assert len(model.requests) == 2

    @pytest.mark.asyncio
    async def test_gives_up_with_planning_error(self):
        _, _, planner = _planner([RuntimeError("down"), text_turn("nope")], plan_max_retries=1)

        with pytest.raises(PlanningError):
            await planner.plan("task")

    @pytest.mark.asyncio
    async def test_abort_is_not_retried(self):
        _, _, planner = _planner([text_turn(PLAN)])
        planner.context.abort("stop")

        with pytest.raises(TaskAbortedError):
            await planner.plan("task")


class TestReplanConversation:
    @pytest.mark.asyncio
    async def test_replan_continues_history(self):
        revised = plan_xml(("Browser", "Collect facts", ""))
        model, _, planner = _planner([text_turn(PLAN), text_turn(revised)])
        await planner.plan("task")

        workflow = await planner.replan("Skip the report")

        messages = model.requests[1].messages
        assert isinstance(messages[-2], AIMessage) and messages[-2].content == PLAN
        assert isinstance(messages[-1], HumanMessage) and messages[-1].content == "Skip the report"
        assert len(workflow.agents) == 1
        assert planner.context.chain.plan_result == revised

    @pytest.mark.asyncio
    async def test_replan_without_history_plans(self):
        model, _, planner = _planner([text_turn(PLAN)])

        await planner.replan("fresh task")

        assert isinstance(model.requests[0].messages[0], SystemMessage)
