"""
简单消息截断器（后备策略）

当 LLM 摘要失败时使用：保留所有 SystemMessage、任务消息和最近 N 条消息，
并清理失去对应 tool_call 的 ToolMessage，保证请求仍然合法。
"""

from typing import List, Optional, Tuple
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage
import logging

from workflowAgent.config.settings import AgentSettings

logger = logging.getLogger(__name__)


def clean_orphan_tool_messages(messages: List[BaseMessage]) -> List[BaseMessage]:
    """
    清理孤儿 ToolMessage（没有对应 tool_call 的 ToolMessage）

    压缩或截断后，如果包含 tool_calls 的 AIMessage 被移除，
    对应的 ToolMessage 留在列表里会导致 API 错误。
    """
    valid_tool_call_ids = set()
    for msg in messages:
        if isinstance(msg, AIMessage) and msg.tool_calls:
            for tc in msg.tool_calls:
                if tc.get("id"):
                    valid_tool_call_ids.add(tc["id"])

    cleaned = []
    for msg in messages:
        if isinstance(msg, ToolMessage) and msg.tool_call_id not in valid_tool_call_ids:
            logger.debug(f"Removing orphan ToolMessage: tool_call_id={msg.tool_call_id}")
            continue
        cleaned.append(msg)
    return cleaned


def split_head(messages: List[BaseMessage]) -> Tuple[List[BaseMessage], List[BaseMessage]]:
    """拆分出需要原样保留的头部：所有 SystemMessage 加上第一条用户消息（任务描述）"""
    head: List[BaseMessage] = []
    rest: List[BaseMessage] = []
    first_human_kept = False
    for msg in messages:
        if isinstance(msg, SystemMessage):
            head.append(msg)
        elif not first_human_kept and isinstance(msg, HumanMessage) and not rest:
            head.append(msg)
            first_human_kept = True
        else:
            rest.append(msg)
    return head, rest


class MessageTruncator:
    """保留头部（SystemMessage + 任务消息）+ 最近 N 条消息"""

    def __init__(self, settings: AgentSettings):
        self.settings = settings

    def truncate(
        self,
        messages: List[BaseMessage],
        max_messages: Optional[int] = None
    ) -> List[BaseMessage]:
        """
        Args:
            messages: 消息列表
            max_messages: 最大保留消息数（不包括 SystemMessage）

        Returns:
            截断后的消息列表（保持原有顺序）
        """
        if max_messages is None:
            max_messages = self.settings.keep_recent_messages

        head, rest = split_head(messages)

        if len(rest) <= max_messages:
            return list(messages)

        recent = clean_orphan_tool_messages(rest[-max_messages:])

        logger.warning(
            f"Truncated messages: {len(messages)} → {len(head) + len(recent)} "
            f"(kept {len(head)} head + {len(recent)} recent)"
        )

        return head + recent
