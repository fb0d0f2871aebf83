"""Tool Router for the Context Manager.

Exposes one fixed set of tools to the agent and routes every call to the
domain server selected by the active domain or by the session it names.
Handlers raise RouterError subclasses for expected failures; ``execute``
turns those, and anything unexpected, into error results.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from domains.registry import DomainRegistry
from mcp_client.client import DomainConnection
from mcp_client.pool import ConnectionPool
from shared.config import RouterSettings
from shared.logging import get_logger
from shared.models import DomainInfo, ResourceContent, ToolDefinition, ToolResult, ToolResultStatus
from shared.schema import Param, object_schema
from mcp_server.crossref import inbound_observation, observation_payload, outbound_observation
from mcp_server.descriptions import DescriptionRefresher
from mcp_server.registry import ToolRegistry
from mcp_server.sessions import SessionTable, extract_domain_session_id

logger = get_logger(__name__)


CONTEXT_TYPES = ["entities", "relations", "observations"]
ADVANCED_TYPES = ["graph", "search", "nodes", "related", "decisions", "milestone"]

ToolsChangedCallback = Callable[[], Awaitable[None]]


class RouterError(Exception):
    """Expected failure of a router tool, reported to the agent as text."""
    status = ToolResultStatus.ERROR
    error_code = "ROUTER_ERROR"


class DomainNotFoundError(RouterError):
    error_code = "DOMAIN_NOT_FOUND"

    def __init__(self, name: str, available: list[str], role: Optional[str] = None) -> None:
        self.name = name
        self.available = available
        if role:
            message = f"Error: {role} domain '{name}' not found."
        else:
            message = f"Error: Domain '{name}' not found. Available domains: {', '.join(available)}"
        super().__init__(message)


class DomainUnavailableError(RouterError):
    status = ToolResultStatus.UNAVAILABLE
    error_code = "DOMAIN_UNAVAILABLE"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Error: Could not connect to domain server for '{name}'")


class NoActiveDomainError(RouterError):
    error_code = "NO_ACTIVE_DOMAIN"

    def __init__(self) -> None:
        super().__init__("Error: No active domain set. Use setActiveDomain tool first.")


class SessionNotFoundError(RouterError):
    error_code = "SESSION_NOT_FOUND"

    def __init__(self, session_id: Optional[str] = None) -> None:
        self.session_id = session_id
        if session_id:
            message = f"Error: Context Manager session with ID '{session_id}' not found."
        else:
            message = "Error: No active Context Manager session found. Start a session first."
        super().__init__(message)


@dataclass
class RouterContext:
    """Shared state every handler works on."""
    domains: DomainRegistry
    pool: ConnectionPool
    sessions: SessionTable
    settings: RouterSettings
    registry: ToolRegistry = field(default_factory=ToolRegistry)
    refresher: Optional[DescriptionRefresher] = None
    on_tools_changed: Optional[ToolsChangedCallback] = None
    active_domain: Optional[str] = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def find_domain(self, name: str, role: Optional[str] = None) -> DomainInfo:
        domain = self.domains.find(name)
        if domain is None:
            raise DomainNotFoundError(name, self.domains.names(), role=role)
        return domain

    async def connect(self, domain: DomainInfo) -> DomainConnection:
        """Live connection for a domain, connecting when needed."""
        connection = self.pool.get(domain.name)
        if connection is None or not await connection.connect():
            raise DomainUnavailableError(domain.name)
        return connection

    async def activate(self, domain: DomainInfo) -> None:
        """Point the router at a domain and refresh tool descriptions."""
        async with self.lock:
            previous = self.active_domain
            self.active_domain = domain.name

        if previous != domain.name:
            logger.info("Active domain changed", domain=domain.name, previous=previous)

        if self.refresher is not None:
            await self.refresher.refresh(domain.name)
            if self.on_tools_changed is not None:
                await self.on_tools_changed()

    def require_active(self) -> DomainInfo:
        if not self.active_domain:
            raise NoActiveDomainError()
        return self.find_domain(self.active_domain)


def _present(**arguments: Any) -> dict[str, Any]:
    """Drop arguments the caller did not supply."""
    return {k: v for k, v in arguments.items() if v is not None}


class ToolRouter:
    """
    Registers the router tools and executes calls against them.

    Responsibilities:
    - Register every tool with its schema and handler
    - Validate tool calls against schemas
    - Route to the right domain connection
    - Report every failure as a ToolResult
    """

    def __init__(self, context: RouterContext) -> None:
        self.context = context
        self.registry = context.registry
        self._register_tools()

    def _register_tools(self) -> None:
        domain = Param("domain", "string", "Domain name")
        unused = Param("random_string", "string", "Unused", required=False)

        tools: list[tuple[str, str, dict[str, Any], Callable[..., Awaitable[ToolResult]]]] = [
            (
                "setActiveDomain",
                "Set the active domain that context tools operate on.",
                object_schema(domain),
                self.set_active_domain,
            ),
            (
                "startsession",
                "Start a new session in a domain and make it the active domain.",
                object_schema(domain, unused),
                self.start_session,
            ),
            (
                "endsession",
                "Record one stage of ending a session; the last stage ends it.",
                object_schema(
                    Param("sessionId", "string", "Session ID from startsession"),
                    Param("stage", "string", "Current stage"),
                    Param("stageNumber", "number", "Stage number"),
                    Param("totalStages", "number", "Total number of stages"),
                    Param("nextStageNeeded", "boolean", "Whether another stage follows"),
                    Param("analysis", "string", "Stage analysis", required=False),
                    Param("isRevision", "boolean", "Revises an earlier stage", required=False),
                    Param("revisesStage", "number", "Stage being revised", required=False),
                    Param("stageData", description="Stage payload", required=False),
                ),
                self.end_session,
            ),
            (
                "buildcontext",
                "Create entities, relations or observations in the active domain.",
                object_schema(
                    Param("type", "string", "What to create", enum=CONTEXT_TYPES),
                    Param("data", description="Payload for the domain server", required=False),
                ),
                self.build_context,
            ),
            (
                "deletecontext",
                "Delete entities, relations or observations in the active domain.",
                object_schema(
                    Param("type", "string", "What to delete", enum=CONTEXT_TYPES),
                    Param("data", description="Payload for the domain server", required=False),
                ),
                self.delete_context,
            ),
            (
                "loadcontext",
                "Load the context of an entity in the active domain.",
                object_schema(
                    Param("entityName", "string", "Entity to load"),
                    Param("entityType", "string", "Entity type", required=False),
                    Param("sessionId", "string", "Session to load into", required=False),
                ),
                self.load_context,
            ),
            (
                "advancedcontext",
                "Query the active domain's knowledge graph.",
                object_schema(
                    Param("type", "string", "Query kind", enum=ADVANCED_TYPES),
                    Param("params", description="Query parameters", required=False),
                ),
                self.advanced_context,
            ),
            (
                "relateCrossDomain",
                "Relate an entity in one domain to an entity in another.",
                object_schema(
                    Param("fromDomain", "string", "Source domain"),
                    Param("fromEntity", "string", "Source entity"),
                    Param("toDomain", "string", "Target domain"),
                    Param("toEntity", "string", "Target entity"),
                    Param("relationType", "string", "Relation type"),
                ),
                self.relate_cross_domain,
            ),
        ]

        if self.context.settings.list_all_entities:
            tools.append((
                "listAllEntities",
                "List the entities of the active domain.",
                object_schema(unused),
                self.list_all_entities,
            ))

        for name, description, schema, handler in tools:
            self.registry.register(
                ToolDefinition(name=name, description=description, input_schema=schema),
                handler
            )

    async def execute(self, tool_name: str, arguments: Optional[dict[str, Any]] = None) -> ToolResult:
        """
        Execute a router tool.

        Args:
            tool_name: Registered tool name
            arguments: Tool arguments from the agent

        Returns:
            Tool execution result; never raises
        """
        start_time = time.time()
        arguments = arguments or {}

        entry = self.registry.get(tool_name)
        if entry is None:
            return ToolResult.failure(
                tool_name,
                f"Error: Tool '{tool_name}' not found",
                status=ToolResultStatus.NOT_FOUND,
                error_code="TOOL_NOT_FOUND"
            )

        is_valid, errors = self.registry.validate_input(tool_name, arguments)
        if not is_valid:
            return ToolResult.failure(
                tool_name,
                f"Error: Validation failed: {'; '.join(errors)}",
                status=ToolResultStatus.VALIDATION_ERROR,
                error_code="VALIDATION_ERROR"
            )

        # Unknown extra arguments are ignored, not forwarded
        known = entry.definition.input_schema.get("properties", {})
        kwargs = {k: v for k, v in arguments.items() if k in known}

        try:
            result = await entry.handler(**kwargs)
        except RouterError as e:
            result = ToolResult.failure(tool_name, str(e), status=e.status, error_code=e.error_code)
        except Exception as e:
            logger.exception("Tool execution failed", tool=tool_name, error=str(e))
            result = ToolResult.failure(
                tool_name,
                f"Error executing {tool_name}: {e}",
                error_code="EXECUTION_ERROR"
            )

        result.tool_name = tool_name
        result.execution_time_ms = (time.time() - start_time) * 1000
        logger.info(
            "Tool executed",
            tool=tool_name,
            status=result.status.value,
            active_domain=self.context.active_domain,
            execution_time_ms=round(result.execution_time_ms, 1)
        )
        return result

    async def set_active_domain(self, domain: str) -> ToolResult:
        info = self.context.find_domain(domain)
        await self.context.connect(info)
        await self.context.activate(info)
        return ToolResult.ok("setActiveDomain", f"Active domain set to: {info.name}")

    async def start_session(self, domain: str, random_string: Optional[str] = None) -> ToolResult:
        info = self.context.find_domain(domain)
        connection = await self.context.connect(info)
        await self.context.activate(info)

        sessions = self.context.sessions
        session = await sessions.create(info.name)

        # Domain servers issue their own session ids
        result = await connection.call_tool("startsession", {})
        if result.is_error:
            await sessions.deactivate(session)
            return result

        await sessions.set_domain_session_id(session, extract_domain_session_id(result))
        return ToolResult.ok(
            "startsession",
            f"{result.text}\n\nNew Context Manager session started with session ID: {session.id}",
            structured_content={"sessionId": session.id, "domain": info.name}
        )

    async def end_session(
        self,
        sessionId: str,
        stage: str,
        stageNumber: float,
        totalStages: float,
        nextStageNeeded: bool,
        analysis: Optional[str] = None,
        isRevision: Optional[bool] = None,
        revisesStage: Optional[float] = None,
        stageData: Any = None
    ) -> ToolResult:
        sessions = self.context.sessions
        session = sessions.get(sessionId)
        if session is None:
            raise SessionNotFoundError(sessionId)

        connection = await self.context.connect(self.context.find_domain(session.domain))
        arguments = _present(
            sessionId=sessions.domain_session_id(session),
            stage=stage,
            stageNumber=stageNumber,
            totalStages=totalStages,
            nextStageNeeded=nextStageNeeded,
            analysis=analysis,
            isRevision=isRevision,
            revisesStage=revisesStage,
            stageData=stageData,
        )
        result = await connection.call_tool("endsession", arguments)
        if nextStageNeeded:
            return result

        await sessions.deactivate(session)
        if result.is_error:
            return result
        return ToolResult.ok(
            "endsession",
            f"{result.text}\n\nContext Manager session {session.id} has been ended.",
            structured_content=result.structured_content
        )

    async def _forward_to_active(self, tool_name: str, arguments: dict[str, Any]) -> ToolResult:
        domain = self.context.require_active()
        connection = await self.context.connect(domain)
        return await connection.call_tool(tool_name, arguments)

    async def build_context(self, type: str, data: Any = None) -> ToolResult:
        return await self._forward_to_active("buildcontext", _present(type=type, data=data))

    async def delete_context(self, type: str, data: Any = None) -> ToolResult:
        return await self._forward_to_active("deletecontext", _present(type=type, data=data))

    async def advanced_context(self, type: str, params: Any = None) -> ToolResult:
        return await self._forward_to_active("advancedcontext", _present(type=type, params=params))

    async def load_context(
        self,
        entityName: str,
        entityType: Optional[str] = None,
        sessionId: Optional[str] = None
    ) -> ToolResult:
        active = self.context.require_active()
        sessions = self.context.sessions

        if sessionId:
            session = sessions.get(sessionId)
        else:
            session = sessions.first_active(active.name)
        if session is None:
            raise SessionNotFoundError()

        # A session stays bound to the domain it was started in
        connection = await self.context.connect(self.context.find_domain(session.domain))
        await sessions.set_entity(session, entityName, entityType)

        return await connection.call_tool("loadcontext", _present(
            entityName=entityName,
            entityType=entityType,
            sessionId=sessions.domain_session_id(session),
        ))

    async def list_all_entities(self, random_string: Optional[str] = None) -> ToolResult:
        domain = self.context.require_active()
        connection = await self.context.connect(domain)

        result = await connection.call_tool(
            "listAllEntities",
            {"random_string": f"from_context_manager_{int(time.time() * 1000)}"}
        )
        if not result.is_error:
            return result

        logger.info(
            "Domain could not list entities, using registry entity types",
            domain=domain.name,
            error=result.first_text
        )
        return ToolResult.ok(
            "listAllEntities",
            f"Available entity types in {domain.name} domain: {', '.join(domain.entity_types)}"
        )

    async def relate_cross_domain(
        self,
        fromDomain: str,
        fromEntity: str,
        toDomain: str,
        toEntity: str,
        relationType: str
    ) -> ToolResult:
        source = self.context.find_domain(fromDomain, role="Source")
        target = self.context.find_domain(toDomain, role="Target")

        # Both sides must be reachable before anything is written
        source_connection = await self.context.connect(source)
        target_connection = await self.context.connect(target)

        written = await source_connection.call_tool(
            "buildcontext",
            observation_payload(fromEntity, outbound_observation(toEntity, target.name, relationType))
        )
        if written.is_error:
            return ToolResult.failure(
                "relateCrossDomain",
                f"Error creating cross-domain relation: could not update {fromEntity} "
                f"in {source.name} domain: {written.text}",
                error_code="SOURCE_WRITE_FAILED"
            )

        written = await target_connection.call_tool(
            "buildcontext",
            observation_payload(toEntity, inbound_observation(fromEntity, source.name, relationType))
        )
        if written.is_error:
            logger.warning(
                "Cross-domain relation is one-sided",
                source=source.name,
                target=target.name,
                relation=relationType
            )
            return ToolResult.failure(
                "relateCrossDomain",
                f"Error creating cross-domain relation: recorded on {fromEntity} ({source.name} domain) "
                f"but not on {toEntity} ({target.name} domain): {written.text}",
                error_code="TARGET_WRITE_FAILED"
            )

        return ToolResult.ok(
            "relateCrossDomain",
            f"Created cross-domain relation: {fromEntity} ({source.name}) "
            f"--[{relationType}]--> {toEntity} ({target.name})"
        )

    async def read_resource(self, uri: str) -> list[ResourceContent]:
        """Forward a resource read to the active domain."""
        if not self.context.active_domain:
            return [ResourceContent(uri=uri, text=str(NoActiveDomainError()))]
        connection = self.context.pool.get(self.context.active_domain)
        if connection is None:
            return [ResourceContent(uri=uri, text=str(DomainUnavailableError(self.context.active_domain)))]
        return await connection.read_resource(uri)

    def status(self) -> dict[str, Any]:
        """Router summary for health output."""
        return {
            "active_domain": self.context.active_domain,
            "domains": self.context.pool.status(),
            "sessions": self.context.sessions.get_stats(),
            "tools": self.registry.names(),
        }

    async def close(self) -> None:
        await self.context.pool.close_all()
