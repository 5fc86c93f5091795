"""Message formatting utilities."""

from __future__ import annotations

from typing import Any

IMAGE_BLOCK_TYPES = ("image", "image_url", "file")


def stringify_content(content: Any) -> str:
    """Convert message content to string.

    Handles:
    - List content (multimodal messages); image blocks are skipped
    - Dict content with "text" field
    - Simple string content

    Args:
        content: Message content (any format)

    Returns:
        String representation
    """
    if isinstance(content, list):
        pieces: list[str] = []
        for item in content:
            if isinstance(item, dict):
                if item.get("type") in IMAGE_BLOCK_TYPES:
                    continue
                if "text" in item:
                    pieces.append(str(item["text"]))
            else:
                pieces.append(str(item))
        return "\n".join(pieces)
    if content is None:
        return ""
    return str(content)


def is_image_block(item: Any) -> bool:
    return isinstance(item, dict) and item.get("type") in IMAGE_BLOCK_TYPES


def truncate_text(text: str, max_length: int, ellipsis: bool = True) -> str:
    """Cut ``text`` to ``max_length`` characters, optionally marking the cut."""
    if not text or len(text) <= max_length:
        return text
    return text[:max_length] + ("..." if ellipsis else "")


__all__ = ["stringify_content", "is_image_block", "truncate_text", "IMAGE_BLOCK_TYPES"]
