"""Shared utilities and base classes for the Context Manager router."""

from shared.models import (
    ConnectionState,
    DomainInfo,
    Session,
    ToolDefinition,
    ToolResult,
    ToolResultStatus,
)
from shared.config import Settings, get_settings
from shared.logging import get_logger, setup_logging

__all__ = [
    "ConnectionState",
    "DomainInfo",
    "Session",
    "ToolDefinition",
    "ToolResult",
    "ToolResultStatus",
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
]
