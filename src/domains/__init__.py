"""Domain servers known to the router.

Each domain is an independent MCP server owning one knowledge graph.
The router never looks inside a domain; it only knows how to reach it.
"""

from domains.registry import (
    BUILTIN_DOMAINS,
    DomainConfigError,
    DomainRegistry,
    load_domain_registry,
)

__all__ = [
    "BUILTIN_DOMAINS",
    "DomainConfigError",
    "DomainRegistry",
    "load_domain_registry",
]
