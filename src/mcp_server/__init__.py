"""MCP Server - the Context Manager router.

Presents one MCP endpoint to the agent, keeps the active domain and the
session table, and forwards tool calls to the domain servers.
"""

from mcp_server.registry import ToolRegistry
from mcp_server.router import (
    DomainNotFoundError,
    RouterContext,
    RouterError,
    ToolRouter,
)
from mcp_server.server import build_router, create_mcp_server
from mcp_server.sessions import SessionTable

__all__ = [
    "ToolRegistry",
    "ToolRouter",
    "RouterContext",
    "RouterError",
    "DomainNotFoundError",
    "SessionTable",
    "build_router",
    "create_mcp_server",
]
