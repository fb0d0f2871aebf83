"""Domain connection: the router's MCP client for one domain server.

A DomainConnection connects lazily, shares one in-flight connect attempt
between concurrent callers and turns every failure into a value. The
transport and ClientSession are owned by a background task so they are
entered and exited by the same task, as anyio requires.
"""

import asyncio
import time
from contextlib import AsyncExitStack
from typing import Any, Optional

import anyio
from mcp import types
from mcp.shared.exceptions import McpError

from shared.logging import get_logger
from shared.models import (
    ConnectionState,
    DomainInfo,
    ResourceContent,
    ToolResult,
    ToolResultStatus,
)
from mcp_client.transport import (
    SessionFactory,
    TransportFactory,
    open_session,
    open_transport,
)

logger = get_logger(__name__)


CLIENT_VERSION = "1.0.0"

_TRANSPORT_ERRORS = (
    anyio.ClosedResourceError,
    anyio.BrokenResourceError,
    anyio.EndOfStream,
    ConnectionError,
)


def is_transport_error(error: BaseException) -> bool:
    """True when an RPC failed because the stream to the domain is gone."""
    if isinstance(error, _TRANSPORT_ERRORS):
        return True
    if isinstance(error, McpError):
        return error.error.code == types.CONNECTION_CLOSED
    return False


class DomainConnection:
    """
    Connection to exactly one domain server.

    States: disconnected -> connecting -> connected, or -> failed. Only
    ``connected`` means a live, initialized session. From any other state
    the next call triggers a new connect attempt.
    """

    def __init__(
        self,
        domain: DomainInfo,
        connect_timeout: float = 30.0,
        call_timeout: float = 120.0,
        transport_factory: Optional[TransportFactory] = None,
        session_factory: Optional[SessionFactory] = None
    ) -> None:
        """
        Initialize a domain connection. Nothing is opened until first use.

        Args:
            domain: Domain definition with its connection recipe
            connect_timeout: Seconds allowed for transport + handshake
            call_timeout: Seconds allowed for one tool call or resource read
            transport_factory: Opens the transport streams (tests inject fakes)
            session_factory: Builds the client session on the streams
        """
        self.domain = domain
        self.name = domain.name
        self.connect_timeout = connect_timeout
        self.call_timeout = call_timeout
        self._transport_factory = transport_factory or open_transport
        self._session_factory = session_factory or open_session

        self._state = ConnectionState.DISCONNECTED
        self._session: Optional[Any] = None
        self._runner: Optional[asyncio.Task] = None
        self._closing: Optional[asyncio.Event] = None
        self._pending: Optional[asyncio.Future] = None
        self.last_error: Optional[str] = None
        self.connect_attempts = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED and self._session is not None

    @property
    def client_info(self) -> types.Implementation:
        return types.Implementation(
            name=f"contextmanager-{self.name}-client",
            version=CLIENT_VERSION
        )

    async def connect(self) -> bool:
        """
        Connect to the domain server if not already connected.

        Concurrent callers wait on the same attempt.

        Returns:
            True when connected, False when the attempt failed
        """
        if self.connected:
            return True

        if self._pending is None or self._pending.done():
            self._pending = asyncio.ensure_future(self._connect())

        pending = self._pending
        try:
            return await asyncio.shield(pending)
        finally:
            if pending.done() and self._pending is pending:
                self._pending = None

    async def _connect(self) -> bool:
        self._state = ConnectionState.CONNECTING
        self.connect_attempts += 1
        start_time = time.time()

        loop = asyncio.get_running_loop()
        ready: asyncio.Future = loop.create_future()
        self._closing = asyncio.Event()
        self._runner = asyncio.create_task(
            self._run(ready, self._closing),
            name=f"domain-connection-{self.name}"
        )

        try:
            await asyncio.wait_for(asyncio.shield(ready), timeout=self.connect_timeout)
        except asyncio.TimeoutError:
            await self._stop_runner(cancel=True)
            return self._fail(f"handshake timed out after {self.connect_timeout}s")
        except Exception as e:
            await self._stop_runner(cancel=True)
            return self._fail(str(e) or type(e).__name__)

        self._state = ConnectionState.CONNECTED
        self.last_error = None
        logger.info(
            "Connected to domain",
            domain=self.name,
            transport=self.domain.transport.value if self.domain.is_network else "stdio",
            elapsed_ms=round((time.time() - start_time) * 1000, 1)
        )
        return True

    def _fail(self, reason: str) -> bool:
        self._state = ConnectionState.FAILED
        self._session = None
        self.last_error = reason
        logger.error("Failed to connect to domain", domain=self.name, error=reason)
        return False

    async def _run(self, ready: asyncio.Future, closing: asyncio.Event) -> None:
        """Own the transport and session for the lifetime of one connection."""
        try:
            async with AsyncExitStack() as stack:
                read_stream, write_stream = await stack.enter_async_context(
                    self._transport_factory(self.domain)
                )
                session = await stack.enter_async_context(
                    self._session_factory(read_stream, write_stream, self.client_info)
                )
                await session.initialize()
                self._session = session
                if not ready.done():
                    ready.set_result(None)
                await closing.wait()
        except asyncio.CancelledError:
            if not ready.done():
                ready.cancel()
            raise
        except Exception as e:
            if not ready.done():
                ready.set_exception(e)
            else:
                logger.warning("Domain connection lost", domain=self.name, error=str(e))
                self.last_error = str(e)
        finally:
            self._session = None
            if self._state == ConnectionState.CONNECTED:
                self._state = ConnectionState.DISCONNECTED
                logger.info("Domain connection closed", domain=self.name)

    async def _stop_runner(self, cancel: bool = False) -> None:
        runner = self._runner
        self._runner = None
        if runner is None:
            return

        if self._closing is not None:
            self._closing.set()
        if cancel:
            runner.cancel()

        try:
            await asyncio.wait_for(runner, timeout=self.connect_timeout)
        except asyncio.CancelledError:
            if not runner.cancelled():
                raise
        except asyncio.TimeoutError:
            logger.warning("Domain connection did not close in time", domain=self.name)
        except Exception as e:
            logger.error("Error disconnecting from domain", domain=self.name, error=str(e))

    async def disconnect(self) -> None:
        """Close the session and transport. Errors are logged, not raised."""
        if not self.connected:
            return

        await self._stop_runner()
        self._session = None
        self._state = ConnectionState.DISCONNECTED
        logger.info("Disconnected from domain", domain=self.name)

    async def _drop(self, reason: str) -> None:
        """Tear down a connection whose stream has closed underneath it."""
        logger.warning("Domain connection dropped", domain=self.name, error=reason)
        self.last_error = reason
        await self._stop_runner(cancel=True)
        self._session = None
        self._state = ConnectionState.DISCONNECTED

    async def call_tool(self, name: str, arguments: Optional[dict[str, Any]] = None) -> ToolResult:
        """
        Call a tool on the domain server.

        Connects first when needed. Never raises: connection problems,
        RPC errors and timeouts come back as error results.
        """
        if not self.connected:
            if not await self.connect():
                return ToolResult.failure(
                    name,
                    f"Error: Not connected to domain {self.name}",
                    status=ToolResultStatus.UNAVAILABLE,
                    error_code="NOT_CONNECTED"
                )

        session = self._session
        if session is None:
            return ToolResult.failure(
                name,
                f"Error: Not connected to domain {self.name}",
                status=ToolResultStatus.UNAVAILABLE,
                error_code="NOT_CONNECTED"
            )

        start_time = time.time()
        try:
            result = await asyncio.wait_for(
                session.call_tool(name, arguments or {}),
                timeout=self.call_timeout
            )
        except asyncio.TimeoutError:
            logger.error("Domain tool call timed out", domain=self.name, tool=name, timeout=self.call_timeout)
            return ToolResult.failure(
                name,
                f"Error: Tool {name} on domain {self.name} timed out after {self.call_timeout}s",
                status=ToolResultStatus.TIMEOUT,
                error_code="TIMEOUT"
            )
        except Exception as e:
            logger.error("Domain tool call failed", domain=self.name, tool=name, error=str(e))
            if is_transport_error(e):
                await self._drop(str(e) or type(e).__name__)
            return ToolResult.failure(
                name,
                f"Error calling tool {name} on domain {self.name}: {e}",
                error_code="CALL_FAILED"
            )

        tool_result = ToolResult.from_mcp(name, result)
        tool_result.execution_time_ms = (time.time() - start_time) * 1000
        return tool_result

    async def read_resource(self, uri: str) -> list[ResourceContent]:
        """
        Read a resource from the domain server.

        Failures are returned as a single content item with the error text.
        """
        if not self.connected:
            if not await self.connect():
                return [ResourceContent(uri=uri, text=f"Error: Not connected to domain {self.name}")]

        session = self._session
        if session is None:
            return [ResourceContent(uri=uri, text=f"Error: Not connected to domain {self.name}")]

        try:
            result = await asyncio.wait_for(
                session.read_resource(uri),
                timeout=self.call_timeout
            )
        except asyncio.TimeoutError:
            logger.error("Domain resource read timed out", domain=self.name, uri=uri)
            return [ResourceContent(uri=uri, text=f"Error reading resource: timed out after {self.call_timeout}s")]
        except Exception as e:
            logger.error("Domain resource read failed", domain=self.name, uri=uri, error=str(e))
            if is_transport_error(e):
                await self._drop(str(e) or type(e).__name__)
            return [ResourceContent(uri=uri, text=f"Error reading resource: {e}")]

        return [
            ResourceContent(
                uri=str(item.uri),
                text=getattr(item, "text", None),
                blob=getattr(item, "blob", None),
                mime_type=item.mimeType
            )
            for item in result.contents
        ]

    def status(self) -> dict[str, Any]:
        """Connection summary for health output."""
        return {
            "state": self._state.value,
            "attempts": self.connect_attempts,
            "last_error": self.last_error,
        }
