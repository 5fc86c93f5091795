"""
大上下文裁剪

每轮调用模型前执行：
- 只保留最近 ``max_dialogue_img_file_num`` 张图片，更早的图片替换为占位文本
- 早于最后一条 AIMessage 的工具结果，超过 ``large_text_length`` 的文本被截断
"""

from typing import Any, List
from langchain_core.messages import AIMessage, BaseMessage, ToolMessage
import logging

from workflowAgent.config.settings import AgentSettings
from workflowAgent.utils.message_utils import is_image_block, truncate_text

logger = logging.getLogger(__name__)

IMAGE_PLACEHOLDER = "[image omitted]"


def _last_ai_index(messages: List[BaseMessage]) -> int:
    for i in range(len(messages) - 1, -1, -1):
        if isinstance(messages[i], AIMessage):
            return i
    return -1


def _trim_text_blocks(content: Any, max_length: int) -> Any:
    if isinstance(content, str):
        return truncate_text(content, max_length)
    trimmed = []
    for block in content:
        if isinstance(block, dict) and block.get("type") == "text" and len(block.get("text", "")) > max_length:
            block = {**block, "text": truncate_text(block["text"], max_length)}
        trimmed.append(block)
    return trimmed


def trim_large_context(messages: List[BaseMessage], settings: AgentSettings) -> int:
    """
    原地裁剪消息列表

    Returns:
        被修改的消息条数
    """
    changed = 0
    image_budget = settings.max_dialogue_img_file_num
    last_ai = _last_ai_index(messages)

    for i in range(len(messages) - 1, -1, -1):
        msg = messages[i]
        content = msg.content
        new_content = content

        if isinstance(content, list):
            kept_reversed = []
            for block in reversed(content):
                if is_image_block(block):
                    if image_budget > 0:
                        image_budget -= 1
                    else:
                        block = {"type": "text", "text": IMAGE_PLACEHOLDER}
                kept_reversed.append(block)
            new_content = list(reversed(kept_reversed))

        if isinstance(msg, ToolMessage) and i < last_ai:
            new_content = _trim_text_blocks(new_content, settings.large_text_length)

        if new_content != content:
            messages[i] = msg.model_copy(update={"content": new_content})
            changed += 1

    if changed:
        logger.debug(f"Trimmed {changed} messages before model call")
    return changed
