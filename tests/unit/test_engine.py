"""End-to-end tests of the task graph through WorkflowEngine with a scripted model."""

import asyncio

import pytest
from langchain_core.messages import AIMessage

from workflowAgent import Agent, WorkflowEngine
from workflowAgent.graph.routing import execute_route
from workflowAgent.llm.types import ModelCatalog
from workflowAgent.planning.replanner import CHECK_TASK_STATUS
from workflowAgent.tools.base import FunctionTool
from workflowAgent.utils.error_handler import WorkflowAgentError
from fakes import RecordingCallback, ScriptedModel, make_settings, plan_xml, text_turn, tool_turn

AGENTS = [Agent("Browser", "Browses the web"), Agent("Writer", "Writes documents")]
PLAN = plan_xml(("Browser", "Collect facts", ""), ("Writer", "Write the report", "0"))


def _engine(streams, calls=None, **settings):
    model = ScriptedModel(streams=streams, calls=calls)
    callback = RecordingCallback()
    engine = WorkflowEngine(make_settings(**settings), ModelCatalog(llms={"default": model}), AGENTS, callback)
    return model, callback, engine


class TestRun:
    @pytest.mark.asyncio
    async def test_plan_then_execute_in_order(self):
        streams = [text_turn(PLAN), text_turn("facts: A, B"), text_turn("report written")]
        model, callback, engine = _engine(streams)

        result = await engine.run("Research and report", task_id="t1")

        assert result.success
        assert result.stop_reason == "done"
        assert result.result == "report written"
        assert [e.agent_name for e in callback.of_type("agent_start")] == ["Browser", "Writer"]
        assert [e.text for e in callback.of_type("agent_result")] == ["facts: A, B", "report written"]

        context = engine.get_task("t1")
        assert [a.status for a in context.workflow.agents] == ["done", "done"]
        # the dependent node sees its dependency's result
        writer_prompt = model.sent_messages[2][1].content
        assert "facts: A, B" in writer_prompt
        assert context.chain.get_agent_chain("t1-01").agent_result == "report written"

    @pytest.mark.asyncio
    async def test_generate_only(self):
        model, callback, engine = _engine([text_turn(PLAN)])

        workflow = await engine.generate("Research and report", task_id="t1", variables={"k": "v"})

        assert [a.id for a in workflow.agents] == ["t1-00", "t1-01"]
        assert engine.get_task("t1").variables == {"k": "v"}
        assert callback.of_type("workflow")[-1].stream_done

    @pytest.mark.asyncio
    async def test_modify_continues_planning_conversation(self):
        revised = plan_xml(("Writer", "Write from memory", ""))
        model, _, engine = _engine([text_turn(PLAN), text_turn(revised)])
        await engine.generate("Research and report", task_id="t1")

        workflow = await engine.modify("t1", "Skip the research")

        assert [a.task for a in workflow.agents] == ["Write from memory"]
        assert model.requests[1].messages[-1].content == "Skip the research"
        assert engine.get_task("t1").workflow is workflow

    @pytest.mark.asyncio
    async def test_parallel_independent_nodes(self):
        plan = plan_xml(("Browser", "Source one", ""), ("Browser", "Source two", ""), ("Writer", "Merge", "0,1"))
        streams = [text_turn(plan), text_turn("one"), text_turn("two"), text_turn("merged")]
        model, callback, engine = _engine(streams, agent_parallel=True)

        result = await engine.run("Compare two sources", task_id="t1")

        assert result.success and result.result == "merged"
        assert sorted(e.text for e in callback.of_type("agent_result")[:2]) == ["one", "two"]
        assert callback.of_type("agent_start")[-1].agent_name == "Writer"
        merge_prompt = model.sent_messages[-1][1].content
        assert "one" in merge_prompt and "two" in merge_prompt


class TestReplan:
    @pytest.mark.asyncio
    async def test_replan_replaces_remaining_nodes(self):
        revised = plan_xml(("Writer", "Write a short note", ""))
        streams = [text_turn(PLAN), text_turn("nothing found"), text_turn(revised), text_turn("note written")]
        check = AIMessage(
            content="",
            tool_calls=[{"id": "r1", "name": CHECK_TASK_STATUS, "args": {"thinking": "x", "replan": True}}],
        )
        model, _, engine = _engine(streams, calls=[check], replan=True)

        result = await engine.run("Research and report", task_id="t1")

        assert result.success and result.result == "note written"
        workflow = engine.get_task("t1").workflow
        assert workflow.modified
        assert [(a.id, a.task) for a in workflow.agents] == [("t1-00", "Collect facts"), ("t1-01", "Write a short note")]
        assert workflow.agents[1].depends_on == ["t1-00"]

    @pytest.mark.asyncio
    async def test_no_replan_keeps_plan(self):
        streams = [text_turn(PLAN), text_turn("facts"), text_turn("report")]
        check = AIMessage(
            content="",
            tool_calls=[{"id": "r1", "name": CHECK_TASK_STATUS, "args": {"thinking": "x", "replan": False}}],
        )
        model, _, engine = _engine(streams, calls=[check, check], replan=True)

        result = await engine.run("Research and report", task_id="t1")

        assert result.result == "report"
        assert not engine.get_task("t1").workflow.modified
        # only the first node leaves work behind, so only one check runs
        checks = [r for r in model.requests if r.tool_choice == CHECK_TASK_STATUS]
        assert len(checks) == 1


class TestFailures:
    @pytest.mark.asyncio
    async def test_model_failure_reported_as_error(self):
        streams = [text_turn(PLAN), RuntimeError("service unavailable")]
        _, _, engine = _engine(streams, max_retry_num=0)

        result = await engine.run("Research and report", task_id="t1")

        assert not result.success
        assert result.stop_reason == "error"
        assert result.error is not None
        assert engine.get_task("t1").workflow.agents[0].status == "error"

    @pytest.mark.asyncio
    async def test_parallel_failure_cancels_sibling_node(self):
        ran = []

        async def slow(args, agent_context):
            await asyncio.sleep(0.2)
            ran.append("slow")
            return "late"

        slow_tool = FunctionTool("slow", "Slow lookup", {"type": "object", "properties": {}}, slow)
        agents = [Agent("Browser", "Browses the web", tools=[slow_tool]), Agent("Writer", "Writes documents")]
        plan = plan_xml(("Browser", "Look it up", ""), ("Writer", "Draft", ""))
        streams = [
            text_turn(plan),
            tool_turn(("c1", "slow", {})),
            RuntimeError("service unavailable"),
            text_turn("browser done"),
        ]
        model = ScriptedModel(streams=streams)
        engine = WorkflowEngine(
            make_settings(agent_parallel=True, max_retry_num=0),
            ModelCatalog(llms={"default": model}),
            agents,
            RecordingCallback(),
        )

        result = await engine.run("Look up and draft", task_id="t1")
        await asyncio.sleep(0.3)

        assert result.stop_reason == "error"
        assert ran == []
        browser = engine.get_task("t1").workflow.agents[0]
        assert browser.status != "done"
        assert engine.callback.of_type("agent_result") == []

    @pytest.mark.asyncio
    async def test_unknown_agent_is_an_error(self):
        plan = plan_xml(("Painter", "Paint", ""))
        _, _, engine = _engine([text_turn(plan)])

        result = await engine.run("Paint something", task_id="t1")

        assert result.stop_reason == "error"
        assert "Painter" in result.result

    @pytest.mark.asyncio
    async def test_abort_during_execution(self):
        streams = [text_turn(PLAN), text_turn("facts"), text_turn("report")]
        _, callback, engine = _engine(streams)

        class AbortOnStart(RecordingCallback):
            async def on_message(self, event, agent_context=None):
                await super().on_message(event, agent_context)
                if event.type == "agent_start":
                    engine.abort(event.task_id, "user cancelled")

        engine.callback = AbortOnStart()
        result = await engine.run("Research and report", task_id="t1")

        assert not result.success
        assert result.stop_reason == "abort"


class TestTaskControl:
    def test_unknown_task(self):
        _, _, engine = _engine([])
        with pytest.raises(WorkflowAgentError):
            engine.get_task("nope")
        assert engine.abort("nope") is False
        assert engine.pause("nope", True) is False
        assert engine.intervene("nope", "hi") is False
        assert engine.delete_task("nope") is False

    @pytest.mark.asyncio
    async def test_intervene_pause_delete(self):
        _, _, engine = _engine([text_turn(PLAN)])
        await engine.generate("task", task_id="t1")
        context = engine.get_task("t1")

        assert engine.intervene("t1", "be quick")
        assert context.conversation == ["be quick"]
        assert engine.pause("t1", True) and context.paused
        assert engine.pause("t1", False) and not context.paused
        assert engine.delete_task("t1")
        assert context.aborted
        assert "t1" not in engine.tasks


class TestRouting:
    def test_routes(self):
        assert execute_route({"remaining": 0, "batch": ["a"], "replan_enabled": True}) == "finalize"
        assert execute_route({"remaining": 2, "batch": ["a"], "replan_enabled": True}) == "replan"
        assert execute_route({"remaining": 2, "batch": ["a", "b"], "replan_enabled": True}) == "execute"
        assert execute_route({"remaining": 2, "batch": ["a"], "replan_enabled": False}) == "execute"
        assert execute_route({"remaining": 2, "batch": [], "replan_enabled": True}) == "execute"
