"""Shared fixtures: a domain registry and fake domain connections."""

from typing import Any, Callable, Optional, Union

import pytest

from domains.registry import BUILTIN_DOMAINS, DomainRegistry
from mcp_client.pool import ConnectionPool
from shared.config import RouterSettings
from shared.models import DomainInfo, ResourceContent, ToolResult

Response = Union[ToolResult, Callable[[dict[str, Any]], ToolResult]]


class FakeConnection:
    """Stands in for a DomainConnection; records every forwarded call."""

    def __init__(self, name: str, reachable: bool = True, responses: Optional[dict[str, Response]] = None):
        self.name = name
        self.reachable = reachable
        self.responses = responses or {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.connect_calls = 0
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> bool:
        self.connect_calls += 1
        self._connected = self.reachable
        return self.reachable

    async def disconnect(self) -> None:
        self._connected = False

    async def call_tool(self, name: str, arguments: Optional[dict[str, Any]] = None) -> ToolResult:
        arguments = arguments or {}
        self.calls.append((name, arguments))
        response = self.responses.get(name)
        if response is None:
            return ToolResult.ok(name, f"{self.name} {name} ok")
        if callable(response):
            return response(arguments)
        return response

    async def read_resource(self, uri: str) -> list[ResourceContent]:
        return [ResourceContent(uri=uri, text=f"{self.name} resource {uri}")]

    def status(self) -> dict[str, Any]:
        return {
            "state": "connected" if self._connected else "disconnected",
            "attempts": self.connect_calls,
            "last_error": None,
        }

    def calls_to(self, tool_name: str) -> list[dict[str, Any]]:
        return [args for name, args in self.calls if name == tool_name]


@pytest.fixture
def domain_registry() -> DomainRegistry:
    return DomainRegistry([
        DomainInfo(command="node", args=[f"domains/{entry['name']}/index.js"], **entry)
        for entry in BUILTIN_DOMAINS
    ])


@pytest.fixture
def connections(domain_registry) -> dict[str, FakeConnection]:
    return {domain.name: FakeConnection(domain.name) for domain in domain_registry}


@pytest.fixture
def make_router(domain_registry, connections):
    from mcp_server.server import build_router

    def _make(**overrides):
        settings = RouterSettings(**overrides)
        pool = ConnectionPool(domain_registry, connections=connections)
        return build_router(settings, domains=domain_registry, pool=pool)

    return _make


@pytest.fixture
def router(make_router):
    return make_router()
