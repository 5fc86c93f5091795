"""Tests for the model layer: chunk conversion, fallback and model resolution."""

import pytest
from langchain_core.language_models.fake_chat_models import GenericFakeChatModel
from langchain_core.messages import AIMessage, AIMessageChunk, HumanMessage

from workflowAgent.config.settings import ModelSettings
from workflowAgent.llm.langchain_model import ChunkConverter, LangChainLanguageModel, map_finish_reason
from workflowAgent.llm.model_resolver import build_model_catalog, resolve_model_configs
from workflowAgent.llm.retry import RetryLanguageModel
from workflowAgent.llm.types import (
    ErrorChunk,
    FinishChunk,
    LLMRequest,
    ModelCatalog,
    ReasoningDelta,
    TextDelta,
    ToolCallChunk,
    ToolInputDelta,
    ToolInputStart,
)
from workflowAgent.utils.error_handler import ModelInvocationError, is_context_overflow
from fakes import ScriptedModel, text_turn


def _request():
    return LLMRequest(messages=[HumanMessage(content="hi")])


async def _collect(stream):
    return [chunk async for chunk in stream]


class TestChunkConverter:
    def test_text_and_reasoning(self):
        converter = ChunkConverter()
        parts = converter.feed(
            AIMessageChunk(content="Hello", additional_kwargs={"reasoning_content": "hmm"})
        )
        assert isinstance(parts[0], ReasoningDelta) and parts[0].delta == "hmm"
        assert isinstance(parts[1], TextDelta) and parts[1].delta == "Hello"

        finish = converter.finish()
        assert len(finish) == 1 and finish[0].finish_reason == "stop"

    def test_tool_call_chunks_grouped_by_index(self):
        converter = ChunkConverter()
        parts = converter.feed(
            AIMessageChunk(content="", tool_call_chunks=[{"index": 0, "id": "c1", "name": "search", "args": '{"q"'}])
        )
        parts += converter.feed(
            AIMessageChunk(content="", tool_call_chunks=[{"index": 0, "id": None, "name": None, "args": ': "x"}'}])
        )
        parts += converter.finish()

        assert parts[0] == ToolInputStart(id="c1", tool_name="search")
        assert [p.delta for p in parts if isinstance(p, ToolInputDelta)] == ['{"q"', ': "x"}']
        assert parts[-2] == ToolCallChunk(tool_call_id="c1", tool_name="search", input='{"q": "x"}')
        assert parts[-1].finish_reason == "tool-calls"

    def test_usage_and_finish_reason(self):
        converter = ChunkConverter()
        converter.feed(
            AIMessageChunk(
                content="",
                response_metadata={"finish_reason": "length"},
                usage_metadata={"input_tokens": 3, "output_tokens": 4, "total_tokens": 7},
            )
        )
        finish = converter.finish()[-1]
        assert finish.finish_reason == "length"
        assert (finish.usage.prompt_tokens, finish.usage.completion_tokens, finish.usage.total_tokens) == (3, 4, 7)

    def test_map_finish_reason(self):
        assert map_finish_reason(None) == "stop"
        assert map_finish_reason("tool_calls") == "tool-calls"
        assert map_finish_reason("content_filter") == "content-filter"
        assert map_finish_reason("weird") == "other"


class TestLangChainLanguageModel:
    @pytest.mark.asyncio
    async def test_stream_from_chat_model(self):
        chat = GenericFakeChatModel(messages=iter([AIMessage(content="hello there")]))
        model = LangChainLanguageModel(chat, name="fake")

        chunks = await _collect(model.stream(_request()))

        text = "".join(c.delta for c in chunks if isinstance(c, TextDelta))
        assert text == "hello there"
        assert isinstance(chunks[-1], FinishChunk)

    @pytest.mark.asyncio
    async def test_call_returns_ai_message(self):
        chat = GenericFakeChatModel(messages=iter([AIMessage(content="answer")]))
        result = await LangChainLanguageModel(chat).call(_request())
        assert result.content == "answer"


class TestRetryLanguageModel:
    @pytest.mark.asyncio
    async def test_call_falls_back_in_order(self):
        first = ScriptedModel(calls=[RuntimeError("first down")])
        second = ScriptedModel(calls=["from second"])
        rlm = RetryLanguageModel({"a": first, "b": second}, ["a", "b"])

        result = await rlm.call(_request())

        assert result.content == "from second"
        assert len(first.requests) == 1

    @pytest.mark.asyncio
    async def test_call_all_failed(self):
        rlm = RetryLanguageModel({"a": ScriptedModel(calls=[RuntimeError("prompt is too long")])})
        with pytest.raises(ModelInvocationError) as exc_info:
            await rlm.call(_request())
        assert "All models failed" in str(exc_info.value)
        assert is_context_overflow(exc_info.value)

    @pytest.mark.asyncio
    async def test_stream_falls_back_before_first_chunk(self):
        first = ScriptedModel(streams=[RuntimeError("refused")])
        second = ScriptedModel(streams=[text_turn("hi")])
        rlm = RetryLanguageModel({"a": first, "b": second}, ["a", "b"])

        chunks = await _collect(await rlm.call_stream(_request()))

        assert "".join(c.delta for c in chunks if isinstance(c, TextDelta)) == "hi"

    @pytest.mark.asyncio
    async def test_stream_error_first_chunk_falls_back(self):
        first = ScriptedModel(streams=[[ErrorChunk(error="bad gateway")]])
        second = ScriptedModel(streams=[text_turn("ok")])
        rlm = RetryLanguageModel({"a": first, "b": second}, ["a", "b"])

        chunks = await _collect(await rlm.call_stream(_request()))

        assert isinstance(chunks[0], TextDelta)

    @pytest.mark.asyncio
    async def test_empty_stream_is_a_failure(self):
        rlm = RetryLanguageModel({"a": ScriptedModel(streams=[[]])})
        with pytest.raises(ModelInvocationError, match="empty stream"):
            await rlm.call_stream(_request())

    def test_unknown_names_ignored_and_default_appended(self):
        rlm = RetryLanguageModel({"default": ScriptedModel(), "plan": ScriptedModel()}, ["plan", "missing"])
        assert rlm.names == ["plan", "default"]

    def test_no_models_configured(self):
        with pytest.raises(ModelInvocationError):
            RetryLanguageModel({})


class TestModelResolver:
    @pytest.fixture(autouse=True)
    def _clean_env(self, monkeypatch):
        for name in ("MODEL_PLAN", "MODEL_PLAN_ID", "MODEL_PLAN_API_KEY", "MODEL_PLAN_BASE_URL",
                     "MODEL_FALLBACKS", "OPENAI_BASE_URL", "MODEL_DEFAULT_BASE_URL"):
            monkeypatch.delenv(name, raising=False)

    def test_resolve_slots(self):
        models = ModelSettings(
            _env_file=None,
            MODEL_DEFAULT="gpt-main",
            MODEL_DEFAULT_API_KEY="key",
            MODEL_FALLBACKS="gpt-a, gpt-b",
            MODEL_PLAN="gpt-plan",
        )
        configs = resolve_model_configs(models)

        assert list(configs) == ["default", "fallback-1", "fallback-2", "plan"]
        assert configs["fallback-2"]["id"] == "gpt-b"
        assert configs["plan"]["api_key"] == "key"

    def test_catalog_phase_order(self):
        models = ModelSettings(_env_file=None, MODEL_DEFAULT="gpt-main", MODEL_DEFAULT_API_KEY="key",
                               MODEL_PLAN="gpt-plan")
        catalog = build_model_catalog(models)

        assert catalog.names_for("agent") == ["default"]
        assert catalog.names_for("plan") == ["plan", "default"]

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.delenv("MODEL_DEFAULT_API_KEY", raising=False)
        with pytest.raises(RuntimeError, match="Missing API key"):
            build_model_catalog(ModelSettings(_env_file=None, MODEL_DEFAULT="gpt-main"))

    def test_catalog_falls_back_to_all_models(self):
        catalog = ModelCatalog(llms={"x": ScriptedModel()})
        assert catalog.names_for("plan") == ["x"]
