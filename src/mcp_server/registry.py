"""Tool Registry for the router.

Keeps every router tool together with its handler. Names and schemas are
fixed at registration; only descriptions change afterwards, when the
active domain changes.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from shared.logging import get_logger
from shared.models import ToolDefinition, ToolResult
from shared.schema import validate_schema

logger = get_logger(__name__)

ToolHandler = Callable[..., Awaitable[ToolResult]]


@dataclass
class RegisteredTool:
    """A tool definition and the coroutine that executes it."""
    definition: ToolDefinition
    handler: ToolHandler

    @property
    def name(self) -> str:
        return self.definition.name


class ToolRegistry:
    """
    Central registry for router tools.

    Responsibilities:
    - Register tools with their handlers
    - Lookup tools by name
    - Validate tool input against schemas
    - Re-register tools with a new description
    """

    def __init__(self) -> None:
        self._tools: dict[str, RegisteredTool] = {}

    def __contains__(self, tool_name: str) -> bool:
        return tool_name in self._tools

    def register(self, tool: ToolDefinition, handler: ToolHandler) -> None:
        """
        Register a tool in the registry.

        Args:
            tool: Tool definition to register
            handler: Coroutine called with the tool's arguments

        Raises:
            ValueError: If tool name is already registered
        """
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")

        self._tools[tool.name] = RegisteredTool(definition=tool, handler=handler)
        logger.debug("Tool registered", tool=tool.name)

    def update_description(self, tool_name: str, description: str) -> ToolDefinition:
        """
        Re-register a tool under the same name, schema and handler.

        Args:
            tool_name: Registered tool name
            description: New description

        Returns:
            The new tool definition

        Raises:
            KeyError: If the tool is not registered
        """
        entry = self._tools[tool_name]
        definition = entry.definition.model_copy(update={"description": description})
        self._tools[tool_name] = RegisteredTool(definition=definition, handler=entry.handler)
        return definition

    def get(self, tool_name: str) -> Optional[RegisteredTool]:
        return self._tools.get(tool_name)

    def names(self) -> list[str]:
        return list(self._tools)

    def list_tools(self) -> list[ToolDefinition]:
        """List all registered tool definitions in registration order."""
        return [entry.definition for entry in self._tools.values()]

    def validate_input(
        self,
        tool_name: str,
        parameters: dict[str, Any]
    ) -> tuple[bool, list[str]]:
        """
        Validate input parameters against tool's input schema.

        Args:
            tool_name: Tool name
            parameters: Input parameters to validate

        Returns:
            Tuple of (is_valid, list of error messages)
        """
        entry = self.get(tool_name)
        if not entry:
            return False, [f"Tool '{tool_name}' not found"]

        if not entry.definition.input_schema:
            return True, []

        return validate_schema(parameters, entry.definition.input_schema)
