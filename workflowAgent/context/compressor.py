"""
上下文压缩器

负责：
1. 判断是否需要压缩（消息数 / 估算 token 数阈值）
2. 分层消息（头部原样保留 / Old 摘要 / Recent 完整保留）
3. 调用 LLM 生成摘要，原地改写消息列表（保持顺序）
4. 降级策略（摘要失败时使用简单截断）
"""

from typing import Awaitable, Callable, List, Literal
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage
from dataclasses import dataclass
import logging

from workflowAgent.config.settings import AgentSettings
from workflowAgent.context.token_estimator import estimate_prompt_tokens
from workflowAgent.context.truncator import MessageTruncator, clean_orphan_tool_messages, split_head
from workflowAgent.utils.error_handler import TaskAbortedError
from workflowAgent.utils.message_utils import stringify_content

logger = logging.getLogger(__name__)

# (prompt, max_tokens) -> summary text
ModelInvoker = Callable[[str, int], Awaitable[str]]

MIN_MESSAGES_FOR_TOKEN_TRIGGER = 10


@dataclass
class CompressionResult:
    """压缩结果"""
    messages: List[BaseMessage]
    before_count: int
    after_count: int
    before_tokens: int
    after_tokens: int
    strategy: Literal["summarize", "truncate", "skipped"]


COMPRESS_PROMPT = """Your task is to write a detailed summary of the conversation history of an AI agent that is executing a task.

Work through the conversation in order and capture:

1. **Task and user instructions**: every request and intervention from the user
2. **Key facts**: data, names, URLs, file paths and numbers discovered so far
3. **Tool calls**: which tools were called, with what arguments, and the important results, formatted as `tool_name(args) -> result`
4. **Errors**: failures encountered and how they were handled
5. **Progress**: what has been completed and what the agent was doing last

Output format:

## Task and instructions
...
## Key facts
- ...
## Tool calls
- ...
## Errors
- ...
## Progress
...

Keep it concise (under 1500 words) and output only the summary.
"""


class ContextCompressor:
    """上下文压缩器"""

    def __init__(self, settings: AgentSettings):
        self.settings = settings
        self.truncator = MessageTruncator(settings)

    def should_compress(self, messages: List[BaseMessage], tools=None) -> bool:
        """消息数达到阈值，或消息数 >= 10 且估算 token 达到阈值"""
        if len(messages) >= self.settings.compress_threshold:
            return True
        if len(messages) < MIN_MESSAGES_FOR_TOKEN_TRIGGER:
            return False
        return estimate_prompt_tokens(messages, tools) >= self.settings.compress_tokens_threshold

    async def compress(
        self,
        messages: List[BaseMessage],
        model_invoker: ModelInvoker,
    ) -> CompressionResult:
        """
        执行消息压缩，原地改写 ``messages``

        Args:
            messages: 待压缩的消息列表（会被原地替换）
            model_invoker: LLM 调用函数 ``(prompt, max_tokens) -> str``

        Returns:
            CompressionResult 包含压缩后的消息和统计
        """
        before_count = len(messages)
        before_tokens = estimate_prompt_tokens(messages)

        head, rest = split_head(messages)
        keep = self.settings.keep_recent_messages
        if len(rest) <= keep:
            logger.debug(f"Nothing to compress ({len(rest)} messages after head)")
            return CompressionResult(
                messages=list(messages),
                before_count=before_count,
                after_count=before_count,
                before_tokens=before_tokens,
                after_tokens=before_tokens,
                strategy="skipped",
            )

        old, recent = rest[:-keep], rest[-keep:]
        logger.info(f"Compressing {len(old)} old messages (keeping {len(head)} head + {len(recent)} recent)")

        try:
            summary = await self._summarize_messages(old, model_invoker)
        except TaskAbortedError:
            raise
        except Exception as e:
            logger.error(f"LLM compression failed: {e}")
            logger.warning("Falling back to simple truncation")
            compressed = self.truncator.truncate(messages)
            strategy = "truncate"
        else:
            compressed = head + [
                HumanMessage(
                    content=(
                        "# Conversation summary (system generated)\n\n"
                        f"The following summarizes {len(old)} earlier messages:\n\n{summary}"
                    )
                )
            ]
            compressed.extend(clean_orphan_tool_messages(recent))
            strategy = "summarize"

        messages[:] = compressed
        after_tokens = estimate_prompt_tokens(compressed)
        logger.info(
            f"Compression complete: {before_count} → {len(compressed)} messages, "
            f"~{before_tokens} → ~{after_tokens} tokens"
        )
        return CompressionResult(
            messages=compressed,
            before_count=before_count,
            after_count=len(compressed),
            before_tokens=before_tokens,
            after_tokens=after_tokens,
            strategy=strategy,
        )

    async def _summarize_messages(self, messages: List[BaseMessage], model_invoker: ModelInvoker) -> str:
        messages_text = self._format_messages_for_summary(messages)
        summary = await model_invoker(f"{COMPRESS_PROMPT}\n\n{messages_text}", 2048)
        if not summary or not summary.strip():
            raise ValueError("Empty summary")
        return summary.strip()

    def _format_messages_for_summary(self, messages: List[BaseMessage]) -> str:
        """将消息格式化为文本（供 LLM 摘要）"""
        formatted = []

        for msg in messages:
            role = msg.__class__.__name__.replace("Message", "")
            content = stringify_content(msg.content)[:2000]

            if isinstance(msg, AIMessage) and msg.tool_calls:
                tools = ", ".join(f"{tc.get('name', 'unknown')}({tc.get('args')})" for tc in msg.tool_calls)
                formatted.append(f"[{role}] {content}\n[{role}] calls: {tools}".strip())
            elif isinstance(msg, ToolMessage):
                tool_name = msg.name or "unknown"
                formatted.append(f"[{role}:{tool_name}] {content[:500]}")
            else:
                formatted.append(f"[{role}] {content}")

        return "\n\n".join(formatted)
