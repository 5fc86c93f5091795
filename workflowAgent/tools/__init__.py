"""Tool contract, adapters, built-in tools and external tool servers."""

from .base import FunctionTool, LangChainToolAdapter, Tool, as_tool, find_tool, merge_tools

__all__ = ["Tool", "FunctionTool", "LangChainToolAdapter", "as_tool", "find_tool", "merge_tools"]
