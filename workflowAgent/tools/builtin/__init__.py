"""Built-in tools."""

from .variable_storage import VariableStorageTool

__all__ = ["VariableStorageTool"]
