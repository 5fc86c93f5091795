"""Tests for per-turn context trimming and the truncation fallback."""

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from workflowAgent.context.trimmer import IMAGE_PLACEHOLDER, trim_large_context
from workflowAgent.context.truncator import MessageTruncator, clean_orphan_tool_messages, split_head
from fakes import make_settings


def _image(data="AAAA"):
    return {"type": "image_url", "image_url": {"url": f"data:image/png;base64,{data}"}}


class TestTrimLargeContext:
    def test_keeps_only_most_recent_images(self):
        settings = make_settings(max_dialogue_img_file_num=1)
        messages = [
            HumanMessage(content=[_image("old"), {"type": "text", "text": "first"}]),
            AIMessage(content="looking"),
            HumanMessage(content=[_image("new"), {"type": "text", "text": "second"}]),
        ]

        changed = trim_large_context(messages, settings)

        assert changed == 1
        assert messages[0].content[0] == {"type": "text", "text": IMAGE_PLACEHOLDER}
        assert messages[2].content[0]["type"] == "image_url"

    def test_truncates_old_large_tool_results(self):
        settings = make_settings(large_text_length=100)
        big = "x" * 500
        messages = [
            AIMessage(content="", tool_calls=[{"id": "c1", "name": "read", "args": {}}]),
            ToolMessage(content=big, tool_call_id="c1", name="read"),
            AIMessage(content="", tool_calls=[{"id": "c2", "name": "read", "args": {}}]),
            ToolMessage(content=big, tool_call_id="c2", name="read"),
        ]

        trim_large_context(messages, settings)

        assert messages[1].content == "x" * 100 + "..."
        # results after the last assistant turn are left for the model to read
        assert messages[3].content == big

    def test_no_change_returns_zero(self, settings):
        messages = [HumanMessage(content="hello"), AIMessage(content="hi")]
        assert trim_large_context(messages, settings) == 0


class TestTruncator:
    def test_split_head_keeps_system_and_task(self):
        messages = [SystemMessage(content="s"), HumanMessage(content="task"), AIMessage(content="a")]
        head, rest = split_head(messages)
        assert [m.content for m in head] == ["s", "task"]
        assert [m.content for m in rest] == ["a"]

    def test_clean_orphan_tool_messages(self):
        messages = [
            ToolMessage(content="orphan", tool_call_id="gone", name="t"),
            AIMessage(content="", tool_calls=[{"id": "c1", "name": "t", "args": {}}]),
            ToolMessage(content="ok", tool_call_id="c1", name="t"),
        ]
        cleaned = clean_orphan_tool_messages(messages)
        assert [m.content for m in cleaned] == ["", "ok"]

    def test_truncate_keeps_recent(self):
        truncator = MessageTruncator(make_settings(keep_recent_messages=2))
        messages = [SystemMessage(content="s"), HumanMessage(content="task")]
        messages += [AIMessage(content=f"m{i}") for i in range(6)]

        result = truncator.truncate(messages)

        assert [m.content for m in result] == ["s", "task", "m4", "m5"]

    def test_short_conversation_untouched(self):
        truncator = MessageTruncator(make_settings(keep_recent_messages=10))
        messages = [SystemMessage(content="s"), HumanMessage(content="task")]
        assert truncator.truncate(messages) == messages
