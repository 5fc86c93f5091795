"""Tests for the expert-mode completion check and todo reconciliation."""

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from workflowAgent.agent import Agent
from workflowAgent.agent.gates import (
    INCOMPLETE_PROMPT,
    TASK_RESULT_CHECK,
    TODO_LIST_MANAGER,
    build_todo_prompt,
    check_task_completion,
    extract_used_tools,
    reconcile_todo_list,
)
from workflowAgent.llm.retry import RetryLanguageModel
from workflowAgent.tools.base import FunctionTool
from workflowAgent.utils.error_handler import TaskAbortedError
from fakes import (
    RecordingCallback,
    ScriptedModel,
    forced_call,
    make_agent_context,
    make_settings,
    make_task_context,
    text_turn,
)


def _tool(name):
    return FunctionTool(name=name, description=name, parameters={"type": "object", "properties": {}},
                        fn=lambda args, ctx: "ok")


def _setup(streams, **settings):
    model = ScriptedModel(streams=streams)
    callback = RecordingCallback()
    context = make_task_context(model, make_settings(max_retry_num=0, **settings), callback=callback)
    agent_context = make_agent_context(context, Agent("Assistant", "General assistant"))
    return model, callback, agent_context, RetryLanguageModel(context.models.llms)


def _messages():
    return [
        SystemMessage(content="system"),
        HumanMessage(content="task"),
        AIMessage(content="", tool_calls=[{"id": "c1", "name": "search", "args": {}}]),
    ]


class TestCompletionCheck:
    @pytest.mark.asyncio
    async def test_completed(self):
        streams = [forced_call(TASK_RESULT_CHECK, {"thought": "ok", "completionStatus": "completed"})]
        model, callback, agent_context, rlm = _setup(streams)
        messages = _messages()

        assert await check_task_completion(agent_context, rlm, messages, [_tool("search")]) is True
        assert len(messages) == 3
        request = model.requests[0]
        assert request.tool_choice == TASK_RESULT_CHECK
        assert "Please check the completion status" in request.messages[-1].content
        assert callback.of_type("tool_result")[0].tool_name == TASK_RESULT_CHECK

    @pytest.mark.asyncio
    async def test_incomplete_appends_todo(self):
        streams = [forced_call(TASK_RESULT_CHECK, {"thought": "no", "completionStatus": "incomplete",
                                                   "todoList": "save file"})]
        _, _, agent_context, rlm = _setup(streams)
        messages = _messages()

        assert await check_task_completion(agent_context, rlm, messages, []) is False
        assert messages[-1].content == INCOMPLETE_PROMPT.format(todo_list="save file")

    @pytest.mark.asyncio
    async def test_no_function_call_fails_open(self):
        _, _, agent_context, rlm = _setup([text_turn("I think it is done")])
        assert await check_task_completion(agent_context, rlm, _messages(), []) is True

    @pytest.mark.asyncio
    async def test_model_error_fails_open(self):
        _, _, agent_context, rlm = _setup([RuntimeError("down")])
        assert await check_task_completion(agent_context, rlm, _messages(), []) is True

    @pytest.mark.asyncio
    async def test_abort_propagates(self):
        _, _, agent_context, rlm = _setup([])
        agent_context.context.abort("user stop")
        with pytest.raises(TaskAbortedError):
            await check_task_completion(agent_context, rlm, _messages(), [])


class TestTodoList:
    def test_build_todo_prompt(self):
        prompt = build_todo_prompt({"completedList": ["a"], "todoList": ["b", "c"], "loopDetection": "no_loop"})
        assert prompt.startswith("# Task Execution Status")
        assert "## Completed task list\n- a" in prompt
        assert "## Pending task list\n- b\n- c" in prompt
        assert "Loop detection" not in prompt
        assert prompt.endswith("Please continue executing the remaining tasks.")

    @pytest.mark.asyncio
    async def test_reconcile_appends_status(self):
        streams = [forced_call(TODO_LIST_MANAGER, {"completedList": [], "todoList": ["x"], "loopDetection": "loop"})]
        model, _, agent_context, rlm = _setup(streams)
        messages = _messages()

        await reconcile_todo_list(agent_context, rlm, messages, [_tool("search"), _tool("unused")])

        assert "Loop detection" in messages[-1].content
        assert [t["function"]["name"] for t in model.requests[0].tools] == ["search", TODO_LIST_MANAGER]

    @pytest.mark.asyncio
    async def test_reconcile_failure_is_logged_only(self):
        _, _, agent_context, rlm = _setup([RuntimeError("down")])
        messages = _messages()

        await reconcile_todo_list(agent_context, rlm, messages, [])

        assert len(messages) == 3


class TestUsedTools:
    def test_extract_used_tools(self):
        tools = [_tool("search"), _tool("write")]
        assert [t.name for t in extract_used_tools(_messages(), tools)] == ["search"]
