"""Core data models for the Context Manager router.

This module defines the shared data structures used across the router,
ensuring type safety and validation throughout the system.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from mcp import types
from pydantic import BaseModel, ConfigDict, Field, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DomainTransport(str, Enum):
    """Network transport used to reach a domain server."""
    SSE = "sse"
    STREAMABLE_HTTP = "streamable-http"


class DomainInfo(BaseModel):
    """
    Static description of a domain server and how to reach it.

    Exactly one connection recipe must be present: a subprocess
    (``command`` + ``args``) or a network endpoint (``host`` + ``port``).
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., min_length=1, description="Unique domain key")
    description: str = Field(default="")
    entity_types: list[str] = Field(default_factory=list, alias="entityTypes")

    # Subprocess recipe
    command: Optional[str] = None
    args: list[str] = Field(default_factory=list)
    env: Optional[dict[str, str]] = None
    cwd: Optional[str] = None

    # Network recipe
    host: Optional[str] = None
    port: Optional[int] = Field(default=None, gt=0, lt=65536)
    path: Optional[str] = None
    transport: DomainTransport = DomainTransport.SSE

    @model_validator(mode="after")
    def _check_recipe(self) -> "DomainInfo":
        has_network = bool(self.host) and self.port is not None
        has_process = bool(self.command)
        if has_network == has_process:
            raise ValueError(
                f"Domain '{self.name}' needs exactly one connection recipe: "
                "command/args or host/port"
            )
        return self

    @property
    def is_network(self) -> bool:
        return bool(self.host) and self.port is not None

    @property
    def url(self) -> Optional[str]:
        """Endpoint URL for network domains."""
        if not self.is_network:
            return None
        default_path = "/sse" if self.transport == DomainTransport.SSE else "/mcp"
        path = self.path or default_path
        if not path.startswith("/"):
            path = f"/{path}"
        return f"http://{self.host}:{self.port}{path}"

    def to_public_dict(self) -> dict[str, Any]:
        """Serialize for the domains://list resource."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ConnectionState(str, Enum):
    """Lifecycle state of a domain connection."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


class Session(BaseModel):
    """
    Router session record.

    Created by startsession, updated by loadcontext, deactivated by
    endsession. Never removed from the session table.
    """
    id: str
    domain: str
    entity_name: Optional[str] = None
    entity_type: Optional[str] = None
    active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    domain_session_id: Optional[str] = Field(
        default=None,
        description="Session id issued by the domain server, when it reported one"
    )


class ToolDefinition(BaseModel):
    """Definition of a tool exposed by the router."""
    name: str = Field(..., description="Tool name as seen by the agent")
    description: str = Field(..., description="Human-readable help text")
    input_schema: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="JSON Schema for input validation"
    )

    def to_mcp(self) -> types.Tool:
        return types.Tool(
            name=self.name,
            description=self.description,
            inputSchema=self.input_schema,
        )


class ToolResultStatus(str, Enum):
    """Status of tool execution."""
    SUCCESS = "success"
    ERROR = "error"
    NOT_FOUND = "not_found"
    VALIDATION_ERROR = "validation_error"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"


class ToolResult(BaseModel):
    """
    Result of a tool execution.

    Failures are values: a result with a non-success status is sent to the
    agent as a normal response with ``isError`` set.
    """
    tool_name: str
    status: ToolResultStatus = ToolResultStatus.SUCCESS
    content: list[dict[str, Any]] = Field(default_factory=list)
    structured_content: Optional[dict[str, Any]] = None
    error_code: Optional[str] = None
    execution_time_ms: float = 0

    @property
    def is_error(self) -> bool:
        return self.status != ToolResultStatus.SUCCESS

    @property
    def text(self) -> str:
        """All text content joined by newlines."""
        return "\n".join(
            item["text"] for item in self.content
            if item.get("type") == "text" and item.get("text") is not None
        )

    @property
    def first_text(self) -> str:
        for item in self.content:
            if item.get("type") == "text" and item.get("text") is not None:
                return item["text"]
        return ""

    @classmethod
    def ok(cls, tool_name: str, text: str, **kwargs: Any) -> "ToolResult":
        return cls(
            tool_name=tool_name,
            content=[{"type": "text", "text": text}],
            **kwargs
        )

    @classmethod
    def failure(
        cls,
        tool_name: str,
        text: str,
        status: ToolResultStatus = ToolResultStatus.ERROR,
        error_code: str = "ERROR"
    ) -> "ToolResult":
        return cls(
            tool_name=tool_name,
            status=status,
            content=[{"type": "text", "text": text}],
            error_code=error_code
        )

    @classmethod
    def from_mcp(cls, tool_name: str, result: types.CallToolResult) -> "ToolResult":
        """Wrap a downstream CallToolResult."""
        return cls(
            tool_name=tool_name,
            status=ToolResultStatus.ERROR if result.isError else ToolResultStatus.SUCCESS,
            content=[item.model_dump(mode="json", exclude_none=True) for item in result.content],
            structured_content=result.structuredContent,
            error_code="DOMAIN_ERROR" if result.isError else None
        )

    def to_mcp(self) -> types.CallToolResult:
        content: list[Any] = []
        for item in self.content:
            kind = item.get("type")
            if kind == "text":
                content.append(types.TextContent(type="text", text=item.get("text", "")))
            elif kind == "image":
                content.append(types.ImageContent.model_validate(item))
            elif kind == "resource":
                content.append(types.EmbeddedResource.model_validate(item))
            else:
                content.append(types.TextContent(type="text", text=json.dumps(item)))
        return types.CallToolResult(
            content=content,
            structuredContent=self.structured_content,
            isError=self.is_error
        )


class ResourceContent(BaseModel):
    """One item of a resource read."""
    uri: str
    text: Optional[str] = None
    blob: Optional[str] = None
    mime_type: Optional[str] = None


class CrossDomainReference(BaseModel):
    """A cross-domain relation recovered from an observation string."""
    direction: Literal["to", "from"]
    entity: str
    domain: str
    relation_type: str
