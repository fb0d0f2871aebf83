"""Context Manager entry point.

Runs the router as an MCP server over stdio (the default) or SSE. In SSE
mode the MCP endpoint is part of a FastAPI application that also serves
health and domain listings.
"""

import argparse
import asyncio
import sys
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import Response
from mcp.server.sse import SseServerTransport
from mcp.server.stdio import stdio_server
from pydantic import BaseModel

from domains.registry import DomainConfigError
from shared.config import Settings, get_settings
from shared.logging import get_logger, setup_logging
from mcp_server.router import ToolRouter
from mcp_server.server import build_router, create_mcp_server, initialization_options

logger = get_logger(__name__)


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    active_domain: Optional[str]
    domains: dict[str, dict[str, Any]]
    sessions: dict[str, int]
    tool_count: int


def create_app(router: ToolRouter, settings: Settings) -> FastAPI:
    """
    Build the FastAPI application for SSE mode.

    Args:
        router: Router to expose
        settings: Application settings

    Returns:
        FastAPI app with /sse, /messages/, /health and /domains
    """
    mcp_server = create_mcp_server(router)
    sse = SseServerTransport("/messages/")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Context Manager started",
            transport="sse",
            domains=router.context.domains.names(),
            tool_count=len(router.registry.names())
        )
        yield
        logger.info("Shutting down Context Manager")
        await router.close()

    app = FastAPI(
        title=settings.router.name,
        description="MCP router for domain knowledge-graph servers",
        version=settings.router.version,
        lifespan=lifespan
    )
    app.state.router = router

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health_check():
        """Health check endpoint."""
        status = router.status()
        return HealthResponse(
            status="healthy",
            version=settings.router.version,
            active_domain=status["active_domain"],
            domains=status["domains"],
            sessions=status["sessions"],
            tool_count=len(status["tools"])
        )

    @app.get("/domains", tags=["Domains"])
    async def list_domains():
        """List all registered domains."""
        return {"domains": router.context.domains.to_public_list()}

    @app.get("/sse", tags=["MCP"])
    async def handle_sse(request: Request):
        async with sse.connect_sse(request.scope, request.receive, request._send) as (read_stream, write_stream):
            await mcp_server.run(read_stream, write_stream, initialization_options(mcp_server))
        return Response()

    app.mount("/messages/", app=sse.handle_post_message)
    return app


async def run_stdio(router: ToolRouter) -> None:
    """Serve the router over stdin/stdout until the client disconnects."""
    mcp_server = create_mcp_server(router)
    logger.info(
        "Context Manager started",
        transport="stdio",
        domains=router.context.domains.names(),
        tool_count=len(router.registry.names())
    )
    try:
        async with stdio_server() as (read_stream, write_stream):
            await mcp_server.run(read_stream, write_stream, initialization_options(mcp_server))
    finally:
        logger.info("Shutting down Context Manager")
        await router.close()


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="context-router",
        description="Route MCP tool calls to domain knowledge-graph servers."
    )
    parser.add_argument("--config", help="Path to settings YAML (default: $ROUTER_CONFIG_PATH or config/settings.yaml)")
    parser.add_argument("--transport", choices=["stdio", "sse"], help="Inbound MCP transport")
    parser.add_argument("--host", help="Bind host for SSE mode")
    parser.add_argument("--port", type=int, help="Bind port for SSE mode")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--domains", help="Comma-separated subset of domains to expose")
    return parser.parse_args(argv)


def load_settings(args: argparse.Namespace) -> Settings:
    """Settings from file and environment, with command line overrides."""
    settings = Settings.from_yaml(args.config) if args.config else get_settings()

    router_overrides: dict[str, Any] = {}
    if args.transport:
        router_overrides["transport"] = args.transport
    if args.host:
        router_overrides["host"] = args.host
    if args.port:
        router_overrides["port"] = args.port
    if args.domains:
        router_overrides["enabled_domains"] = [d.strip() for d in args.domains.split(",") if d.strip()]

    updates: dict[str, Any] = {"router": settings.router.model_copy(update=router_overrides)}
    if args.debug:
        updates.update(debug=True, log_level="DEBUG")
    return settings.model_copy(update=updates)


def main(argv: Optional[list[str]] = None) -> int:
    """Run the Context Manager."""
    settings = load_settings(parse_args(argv))
    setup_logging(
        settings.log_level,
        json_output=settings.json_logs or settings.environment == "production"
    )

    try:
        router = build_router(settings.router)
    except DomainConfigError as e:
        logger.error("Invalid domain configuration", error=str(e))
        return 1

    if settings.router.transport == "sse":
        import uvicorn

        uvicorn.run(
            create_app(router, settings),
            host=settings.router.host,
            port=settings.router.port,
            log_level=settings.log_level.lower()
        )
    else:
        asyncio.run(run_stdio(router))
    return 0


if __name__ == "__main__":
    sys.exit(main())
