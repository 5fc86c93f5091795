"""Unit tests for ContextCompressor.

Tests the compression trigger, summarization and the truncation fallback.
"""

import pytest
from unittest.mock import AsyncMock

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from workflowAgent.context.compressor import ContextCompressor
from workflowAgent.utils.error_handler import TaskAbortedError
from fakes import make_settings


@pytest.fixture
def compressor():
    return ContextCompressor(make_settings(compress_threshold=20, keep_recent_messages=5))


@pytest.fixture
def sample_messages():
    """System + task message followed by 10 tool turns (30 messages)."""
    messages = [SystemMessage(content="You are a helpful assistant."), HumanMessage(content="Find the weather")]
    for i in range(10):
        messages.append(
            AIMessage(content="", tool_calls=[{"id": f"c{i}", "name": "search", "args": {"q": f"query {i}"}}])
        )
        messages.append(ToolMessage(content=f"result {i}", tool_call_id=f"c{i}", name="search"))
        messages.append(AIMessage(content=f"Thinking about result {i}"))
    return messages


class TestShouldCompress:
    def test_message_count_threshold(self, compressor, sample_messages):
        assert compressor.should_compress(sample_messages) is True
        assert compressor.should_compress(sample_messages[:19]) is False

    def test_token_threshold_needs_ten_messages(self):
        compressor = ContextCompressor(make_settings(compress_tokens_threshold=10))
        long_text = HumanMessage(content="word " * 200)
        assert compressor.should_compress([long_text] * 9) is False
        assert compressor.should_compress([long_text] * 10) is True

    def test_tools_count_towards_tokens(self):
        compressor = ContextCompressor(make_settings(compress_tokens_threshold=60))
        messages = [HumanMessage(content="hi")] * 10
        tools = [{"type": "function", "function": {"name": "t", "description": "describe " * 80}}]
        assert compressor.should_compress(messages) is False
        assert compressor.should_compress(messages, tools) is True


class TestCompress:
    @pytest.mark.asyncio
    async def test_summarize_keeps_head_and_recent(self, compressor, sample_messages):
        invoker = AsyncMock(return_value="Searched ten times.")
        recent = sample_messages[-5:]

        result = await compressor.compress(sample_messages, invoker)

        assert result.strategy == "summarize"
        assert isinstance(sample_messages[0], SystemMessage)
        assert sample_messages[1].content == "Find the weather"
        assert sample_messages[2].content.startswith("# Conversation summary (system generated)")
        assert "Searched ten times." in sample_messages[2].content
        # result 8 loses its tool call to the summary and is dropped
        assert all(not isinstance(m, ToolMessage) or m.tool_call_id == "c9" for m in sample_messages[3:])
        assert sample_messages[-1] is recent[-1]
        assert result.after_count == len(sample_messages)
        assert result.before_count == 32

        prompt, max_tokens = invoker.call_args.args
        assert max_tokens == 2048
        assert "search" in prompt

    @pytest.mark.asyncio
    async def test_nothing_to_compress(self, compressor):
        messages = [SystemMessage(content="s"), HumanMessage(content="task"), AIMessage(content="done")]
        invoker = AsyncMock(return_value="summary")

        result = await compressor.compress(messages, invoker)

        assert result.strategy == "skipped"
        assert len(messages) == 3
        invoker.assert_not_called()

    @pytest.mark.asyncio
    async def test_fallback_to_truncation_on_failure(self, compressor, sample_messages):
        invoker = AsyncMock(side_effect=RuntimeError("model down"))

        result = await compressor.compress(sample_messages, invoker)

        assert result.strategy == "truncate"
        assert isinstance(sample_messages[0], SystemMessage)
        assert sample_messages[1].content == "Find the weather"
        assert len(sample_messages) <= 2 + 5

    @pytest.mark.asyncio
    async def test_empty_summary_falls_back(self, compressor, sample_messages):
        result = await compressor.compress(sample_messages, AsyncMock(return_value="   "))
        assert result.strategy == "truncate"

    @pytest.mark.asyncio
    async def test_abort_propagates(self, compressor, sample_messages):
        before = list(sample_messages)
        with pytest.raises(TaskAbortedError):
            await compressor.compress(sample_messages, AsyncMock(side_effect=TaskAbortedError()))
        assert sample_messages == before
