"""
Tools module for agent capabilities.
"""

from .base import BaseTool, ExecutionContext, Tool, ToolParameter, ToolResult
from .registry import ToolRegistry, create_tool_registry
from .messaging import create_messaging_tools

__all__ = [
    "BaseTool",
    "ExecutionContext",
    "Tool",
    "ToolParameter",
    "ToolResult",
    "ToolRegistry",
    "create_tool_registry",
    "create_messaging_tools",
]
