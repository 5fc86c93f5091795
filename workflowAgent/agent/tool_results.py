"""Fold tool results into conversation messages."""

from __future__ import annotations

from typing import Any, Dict, List, Union

from langchain_core.messages import BaseMessage, HumanMessage, ToolMessage
from mcp.types import ImageContent, TextContent

from workflowAgent.llm.types import ToolResult


def _image_block(item: ImageContent) -> Dict[str, Any]:
    data = item.data
    if data.startswith("data:"):
        data = data[data.index(",") + 1:]
    mime_type = item.mimeType or "image/png"
    return {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{data}"}}


def convert_tool_result(
    tool_call_id: str,
    tool_name: str,
    tool_result: ToolResult,
    user_messages: List[BaseMessage],
    multimodal: bool = True,
) -> ToolMessage:
    """Build the ToolMessage for one tool call.

    A single text item becomes plain text content; an error text that does
    not already start with "Error" is prefixed with "Error: "; an empty
    successful text becomes "Successful". Anything else becomes a list of
    content blocks. With ``multimodal`` off, images are moved out of the tool
    message into follow-up user messages appended to ``user_messages``.
    """
    status = "error" if tool_result.is_error else "success"
    content: Union[str, List[Dict[str, Any]]]

    if not tool_result.content:
        content = "Error" if tool_result.is_error else "Successful"
    elif len(tool_result.content) == 1 and isinstance(tool_result.content[0], TextContent):
        text = tool_result.content[0].text
        if tool_result.is_error and not text.startswith("Error"):
            text = "Error: " + text
        elif not tool_result.is_error and not text:
            text = "Successful"
        content = text
    else:
        blocks: List[Dict[str, Any]] = []
        for item in tool_result.content:
            if isinstance(item, TextContent):
                blocks.append({"type": "text", "text": item.text})
            elif multimodal:
                blocks.append(_image_block(item))
            else:
                user_messages.append(
                    HumanMessage(
                        content=[
                            _image_block(item),
                            {"type": "text", "text": f"call `{tool_name}` tool result"},
                        ]
                    )
                )
        if not blocks:
            blocks.append({"type": "text", "text": "Successful"})
        content = blocks

    return ToolMessage(content=content, tool_call_id=tool_call_id, name=tool_name, status=status)
