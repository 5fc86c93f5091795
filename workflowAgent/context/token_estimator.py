"""
Token 估算

确定性的启发式估算，用于触发上下文压缩（不依赖 tokenizer）：
- CJK / 假名 / 韩文字符: 2
- 空白: 0
- 连续 ASCII 字母: 长度 <= 4 记 1，否则 ceil(len/4)
- 连续数字: max(1, ceil(len/3))
- 其他单个字符: 1
"""

from __future__ import annotations

import json
import math
from typing import Any, Dict, Iterable, List, Optional

from langchain_core.messages import AIMessage, BaseMessage

from workflowAgent.utils.message_utils import stringify_content

_WIDE_RANGES = (
    (0x4E00, 0x9FFF),  # CJK Unified Ideographs
    (0x3400, 0x4DBF),  # CJK Extension A
    (0x3040, 0x309F),  # Hiragana
    (0x30A0, 0x30FF),  # Katakana
    (0xAC00, 0xD7AF),  # Hangul Syllables
)


def _is_wide(code: int) -> bool:
    for low, high in _WIDE_RANGES:
        if low <= code <= high:
            return True
    return False


def _is_ascii_letter(ch: str) -> bool:
    return ("a" <= ch <= "z") or ("A" <= ch <= "Z")


def _is_ascii_digit(ch: str) -> bool:
    return "0" <= ch <= "9"


def estimate_tokens(text: Optional[str]) -> int:
    """估算单段文本的 token 数（空文本为 0，非空文本至少为 1）"""
    if not text:
        return 0

    count = 0
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if _is_wide(ord(ch)):
            count += 2
            i += 1
        elif ch.isspace():
            i += 1
        elif _is_ascii_letter(ch):
            j = i + 1
            while j < n and _is_ascii_letter(text[j]):
                j += 1
            length = j - i
            count += 1 if length <= 4 else math.ceil(length / 4)
            i = j
        elif _is_ascii_digit(ch):
            j = i + 1
            while j < n and _is_ascii_digit(text[j]):
                j += 1
            count += max(1, math.ceil((j - i) / 3))
            i = j
        else:
            count += 1
            i += 1
    return max(1, count)


def estimate_message_tokens(message: BaseMessage) -> int:
    tokens = estimate_tokens(stringify_content(message.content))
    if isinstance(message, AIMessage):
        for call in message.tool_calls:
            tokens += estimate_tokens(call.get("name", ""))
            tokens += estimate_tokens(json.dumps(call.get("args") or {}, ensure_ascii=False))
    return tokens


def estimate_prompt_tokens(
    messages: List[BaseMessage],
    tools: Optional[Iterable[Dict[str, Any]]] = None,
) -> int:
    """估算整个请求（消息 + 工具 schema）的 token 数"""
    total = sum(estimate_message_tokens(m) for m in messages)
    for tool in tools or []:
        total += estimate_tokens(json.dumps(tool, ensure_ascii=False))
    return total
