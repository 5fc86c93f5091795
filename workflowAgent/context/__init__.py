"""
上下文管理模块

- 确定性 Token 估算（用于触发压缩）
- LLM 摘要压缩，失败时降级到简单截断
- 每轮调用前的大上下文裁剪（图片数量、超长工具结果）
"""

from .token_estimator import estimate_tokens, estimate_prompt_tokens
from .compressor import ContextCompressor, CompressionResult
from .truncator import MessageTruncator
from .trimmer import trim_large_context

__all__ = [
    "estimate_tokens",
    "estimate_prompt_tokens",
    "ContextCompressor",
    "CompressionResult",
    "MessageTruncator",
    "trim_large_context",
]
