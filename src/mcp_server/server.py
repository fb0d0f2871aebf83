"""MCP server wiring.

Builds the router from settings and exposes it through the low-level MCP
``Server``: the router tools, the ``domains://list`` resource and resource
reads forwarded to the active domain.
"""

import base64
import json
from typing import Any, Iterable, Optional

from mcp import types
from mcp.server import NotificationOptions, Server
from mcp.server.lowlevel.helper_types import ReadResourceContents

from domains.registry import DomainRegistry, load_domain_registry
from mcp_client.pool import ConnectionPool
from mcp_client.transport import SessionFactory, TransportFactory
from shared.config import RouterSettings
from shared.logging import bind_context, clear_context, get_logger
from mcp_server.descriptions import DescriptionRefresher
from mcp_server.registry import ToolRegistry
from mcp_server.router import RouterContext, ToolRouter
from mcp_server.sessions import SessionTable

logger = get_logger(__name__)

DOMAINS_RESOURCE_URI = "domains://list"


def build_router(
    settings: RouterSettings,
    domains: Optional[DomainRegistry] = None,
    pool: Optional[ConnectionPool] = None,
    transport_factory: Optional[TransportFactory] = None,
    session_factory: Optional[SessionFactory] = None
) -> ToolRouter:
    """
    Assemble the router and everything it depends on.

    Args:
        settings: Router settings
        domains: Domain registry; loaded from settings when omitted
        pool: Connection pool; one connection per domain when omitted
        transport_factory: Transport opener handed to new connections
        session_factory: Client session builder handed to new connections

    Raises:
        DomainConfigError: If the domain configuration is invalid
    """
    if domains is None:
        domains = load_domain_registry(settings)
    if pool is None:
        pool = ConnectionPool(
            domains,
            connect_timeout=settings.connect_timeout,
            call_timeout=settings.call_timeout,
            transport_factory=transport_factory,
            session_factory=session_factory
        )
    registry = ToolRegistry()
    refresher = None
    if settings.description_refresh:
        refresher = DescriptionRefresher(registry, settings.descriptions_path)

    context = RouterContext(
        domains=domains,
        pool=pool,
        sessions=SessionTable(settings.session_id_style),
        settings=settings,
        registry=registry,
        refresher=refresher,
    )
    return ToolRouter(context)


def domains_resource_text(domains: DomainRegistry) -> str:
    """JSON served for domains://list."""
    return json.dumps(domains.to_public_list(), indent=2)


def initialization_options(server: Server) -> Any:
    return server.create_initialization_options(
        notification_options=NotificationOptions(tools_changed=True)
    )


def create_mcp_server(router: ToolRouter) -> Server:
    """Create the MCP server that fronts a router."""
    settings = router.context.settings
    server: Server = Server(settings.name, version=settings.version)

    async def notify_tools_changed() -> None:
        try:
            ctx = server.request_context
        except LookupError:
            logger.debug("Tool descriptions changed outside a request, no client to notify")
            return
        await ctx.session.send_tool_list_changed()

    router.context.on_tools_changed = notify_tools_changed

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        return [definition.to_mcp() for definition in router.registry.list_tools()]

    @server.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: dict[str, Any]) -> types.CallToolResult:
        bind_context(tool=name)
        try:
            result = await router.execute(name, arguments)
        finally:
            clear_context()
        return result.to_mcp()

    @server.list_resources()
    async def list_resources() -> list[types.Resource]:
        return [
            types.Resource(
                uri=DOMAINS_RESOURCE_URI,
                name="domains",
                description="Domain servers available through the Context Manager",
                mimeType="application/json",
            )
        ]

    @server.read_resource()
    async def read_resource(uri: Any) -> Iterable[ReadResourceContents]:
        uri = str(uri)
        if uri.rstrip("/") == DOMAINS_RESOURCE_URI:
            return [
                ReadResourceContents(
                    content=domains_resource_text(router.context.domains),
                    mime_type="application/json",
                )
            ]

        contents = await router.read_resource(uri)
        return [
            ReadResourceContents(
                content=item.text if item.text is not None else base64.b64decode(item.blob or ""),
                mime_type=item.mime_type,
            )
            for item in contents
        ]

    return server
