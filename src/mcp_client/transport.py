"""Transport selection for domain connections.

A transport factory takes a DomainInfo and returns an async context manager
yielding the (read_stream, write_stream) pair a ClientSession runs on.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncIterator, Callable

from mcp import ClientSession, StdioServerParameters, types
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamablehttp_client

from shared.logging import get_logger
from shared.models import DomainInfo, DomainTransport

logger = get_logger(__name__)

Streams = tuple[Any, Any]
TransportFactory = Callable[[DomainInfo], AsyncContextManager[Streams]]
SessionFactory = Callable[[Any, Any, types.Implementation], AsyncContextManager[Any]]


@asynccontextmanager
async def open_transport(domain: DomainInfo) -> AsyncIterator[Streams]:
    """
    Open the transport described by a domain's connection recipe.

    Network recipes use SSE or streamable HTTP; subprocess recipes spawn the
    domain server and talk to it over its stdin/stdout.
    """
    if domain.is_network:
        url = domain.url
        logger.debug("Opening network transport", domain=domain.name, url=url, transport=domain.transport.value)
        if domain.transport == DomainTransport.STREAMABLE_HTTP:
            async with streamablehttp_client(url) as (read_stream, write_stream, _):
                yield read_stream, write_stream
        else:
            async with sse_client(url) as (read_stream, write_stream):
                yield read_stream, write_stream
        return

    params = StdioServerParameters(
        command=domain.command,
        args=list(domain.args),
        env=domain.env,
        cwd=domain.cwd,
    )
    logger.debug("Spawning domain server", domain=domain.name, command=[domain.command, *domain.args])
    async with stdio_client(params) as (read_stream, write_stream):
        yield read_stream, write_stream


def open_session(read_stream: Any, write_stream: Any, client_info: types.Implementation) -> ClientSession:
    """Create the MCP client session used on top of a transport."""
    return ClientSession(read_stream, write_stream, client_info=client_info)
