"""Connection pool: one DomainConnection per registered domain."""

import asyncio
from typing import Any, Iterator, Optional

from domains.registry import DomainRegistry
from shared.logging import get_logger
from mcp_client.client import DomainConnection
from mcp_client.transport import SessionFactory, TransportFactory

logger = get_logger(__name__)


class ConnectionPool:
    """
    Owns every DomainConnection for the lifetime of the process.

    Connections are created eagerly but connect lazily on first use.
    """

    def __init__(
        self,
        registry: DomainRegistry,
        connect_timeout: float = 30.0,
        call_timeout: float = 120.0,
        transport_factory: Optional[TransportFactory] = None,
        session_factory: Optional[SessionFactory] = None,
        connections: Optional[dict[str, DomainConnection]] = None
    ) -> None:
        """
        Args:
            registry: Domains to connect to
            connect_timeout: Handshake limit per connect, in seconds
            call_timeout: Limit per forwarded request, in seconds
            transport_factory: Transport opener for new connections
            session_factory: Client session builder for new connections
            connections: Ready-made connections by domain name; domains
                missing from it get a new DomainConnection
        """
        self.registry = registry
        self._connections: dict[str, DomainConnection] = dict(connections or {})
        for domain in registry:
            if domain.name in self._connections:
                continue
            self._connections[domain.name] = DomainConnection(
                domain,
                connect_timeout=connect_timeout,
                call_timeout=call_timeout,
                transport_factory=transport_factory,
                session_factory=session_factory
            )

    def __iter__(self) -> Iterator[DomainConnection]:
        return iter(self._connections.values())

    def get(self, domain_name: str) -> Optional[DomainConnection]:
        """Connection for a domain, by any casing of its name."""
        domain = self.registry.find(domain_name)
        if domain is None:
            return None
        return self._connections.get(domain.name)

    def status(self) -> dict[str, dict[str, Any]]:
        return {name: conn.status() for name, conn in self._connections.items()}

    async def close_all(self) -> None:
        """Disconnect every domain. Errors are logged by each connection."""
        connections = [c for c in self._connections.values() if c.connected]
        if not connections:
            return
        logger.info("Closing domain connections", count=len(connections))
        await asyncio.gather(*(c.disconnect() for c in connections))
