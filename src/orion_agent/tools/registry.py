"""
Tool registry for managing available tools.
"""

import json
from typing import TYPE_CHECKING, Any, Union

import structlog

from ..errors import ToolExecutionError
from ..llm.base import LLMMessage, ToolCall, ToolDefinition
from .base import BaseTool, ExecutionContext, Tool, ToolResult

if TYPE_CHECKING:
    from ..channels.base import BaseChannel

logger = structlog.get_logger()


def _decode_arguments(arguments: str | dict[str, Any] | None) -> dict[str, Any]:
    """Decode the model's JSON arguments into a dict."""
    if arguments is None or arguments == "":
        return {}
    if isinstance(arguments, dict):
        return arguments
    value = json.loads(arguments)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError("arguments must be a JSON object")
    return value


class ToolRegistry:
    """Registry for managing tools.

    Tools are registered at startup and only read afterwards, so concurrent
    runs can share one registry.
    """

    def __init__(self):
        self._tools: dict[str, Union[BaseTool, Tool]] = {}

    def register(self, tool: Union[BaseTool, Tool]) -> None:
        """Register a tool."""
        self._tools[tool.name] = tool
        logger.debug("Tool registered", tool_name=tool.name)

    def get(self, name: str) -> Union[BaseTool, Tool, None]:
        """Get a tool by name."""
        return self._tools.get(name)

    def list_tools(self) -> list[str]:
        """List all registered tool names."""
        return list(self._tools.keys())

    def get_definitions(self) -> list[ToolDefinition]:
        """Get all tool definitions for LLM."""
        definitions = []
        for tool in self._tools.values():
            if isinstance(tool, Tool):
                definitions.append(ToolDefinition(
                    name=tool.name,
                    description=tool.description,
                    parameters=tool.get_parameters_schema(),
                ))
            else:
                definitions.append(ToolDefinition(
                    name=tool.name,
                    description=tool.description,
                    parameters=tool.parameters,
                ))
        return definitions

    async def execute(
        self,
        name: str,
        arguments: str | dict[str, Any] | None,
        exec_ctx: ExecutionContext,
    ) -> ToolResult:
        """Execute a tool by name.

        Never raises for tool-side problems: unknown tools, malformed
        arguments and exceptions inside the tool all become failed results.
        """
        tool = self.get(name)
        if tool is None:
            logger.warning("Unknown tool requested", tool_name=name)
            return ToolResult.fail(f"tool not found: {name}")

        try:
            args = _decode_arguments(arguments)
        except ValueError as e:
            logger.warning("Invalid tool arguments", tool_name=name, error=str(e))
            return ToolResult.fail(f"invalid arguments: {e}")

        try:
            logger.info("Executing tool", tool_name=name, arguments=args)
            result = await tool.execute(args, exec_ctx)
            logger.info("Tool executed", tool_name=name, success=result.success)
            return result
        except ToolExecutionError as e:
            logger.warning("Tool failed", tool_name=name, error=str(e))
            return ToolResult.fail(str(e))
        except Exception as e:
            logger.error("Tool execution error", tool_name=name, error=str(e), exc_info=True)
            return ToolResult.fail(str(e) or type(e).__name__)

    async def execute_tool_calls(
        self,
        calls: list[ToolCall],
        exec_ctx: ExecutionContext,
    ) -> list[LLMMessage]:
        """Execute a batch of tool calls in request order.

        Returns exactly one tool-role message per call, in the same order.
        """
        results = []
        for call in calls:
            result = await self.execute(call.name, call.arguments, exec_ctx)
            results.append(LLMMessage(
                role="tool",
                content=result.to_json(),
                tool_call_id=call.id,
                name=call.name,
            ))
        return results


def create_tool_registry(channel: "BaseChannel") -> ToolRegistry:
    """Create a registry holding the built-in tools for a channel."""
    from .messaging import create_messaging_tools

    registry = ToolRegistry()
    for tool in create_messaging_tools(channel):
        registry.register(tool)
    logger.info("Tool registry initialized", tools=len(registry.list_tools()))
    return registry
