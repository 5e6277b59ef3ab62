"""
Base classes for tools.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine


@dataclass
class ToolResult:
    """Result from a tool execution."""

    success: bool
    data: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> "ToolResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error)

    def to_json(self) -> str:
        """Compact JSON as sent back to the model in a tool message."""
        payload: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            payload["data"] = self.data
        if self.error:
            payload["error"] = self.error
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)


@dataclass(frozen=True)
class ExecutionContext:
    """Per-run identifiers handed to every tool call.

    index_map resolves the "message N" indices the model sees in the
    transcript back to real message ids.
    """

    chat_id: str
    sender_id: str
    message_id: str
    index_map: dict[int, str] = field(default_factory=dict)

    def resolve_index(self, index: int) -> str | None:
        """Map a transcript index to a message id."""
        return self.index_map.get(index)


@dataclass
class ToolParameter:
    """Definition of a tool parameter."""

    name: str
    param_type: str  # string, integer, boolean, array, object
    description: str
    required: bool = True
    default: Any = None
    enum: list[str] | None = None


class BaseTool(ABC):
    """Base class for all tools."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the tool name."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Get the tool description."""
        pass

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """Get the tool parameters schema (JSON Schema)."""
        pass

    @abstractmethod
    async def execute(self, args: dict[str, Any], exec_ctx: ExecutionContext) -> ToolResult:
        """Execute the tool with decoded arguments."""
        pass


@dataclass
class Tool:
    """
    Simple tool wrapper that can be created from a function.

    This is an alternative to the class-based BaseTool for simpler tools.
    The handler receives the execution context followed by the decoded
    arguments as keyword arguments.
    """

    name: str
    description: str
    parameters: list[ToolParameter]
    handler: Callable[..., Coroutine[Any, Any, ToolResult]]

    def get_parameters_schema(self) -> dict[str, Any]:
        """Convert parameters to JSON Schema format."""
        properties = {}
        required = []

        for param in self.parameters:
            prop: dict[str, Any] = {
                "type": param.param_type,
                "description": param.description,
            }
            if param.enum:
                prop["enum"] = param.enum
            if param.default is not None:
                prop["default"] = param.default

            properties[param.name] = prop

            if param.required:
                required.append(param.name)

        return {
            "type": "object",
            "properties": properties,
            "required": required,
        }

    async def execute(self, args: dict[str, Any], exec_ctx: ExecutionContext) -> ToolResult:
        """Execute the tool handler."""
        return await self.handler(exec_ctx, **args)
