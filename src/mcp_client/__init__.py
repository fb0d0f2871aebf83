"""MCP Client - connections from the router to the domain servers.

Each domain server gets one DomainConnection that connects lazily,
reconnects on demand and reports every failure as a result value.
"""

from mcp_client.client import DomainConnection
from mcp_client.pool import ConnectionPool

__all__ = [
    "ConnectionPool",
    "DomainConnection",
]
