"""Tests for MCP Server components."""

import pytest

from shared.models import (
    Session,
    ToolDefinition,
    ToolResult,
    ToolResultStatus,
)


async def _noop(**kwargs):
    return ToolResult.ok("noop", "ok")


class TestToolRegistry:
    """Tests for the ToolRegistry."""

    def test_register_tool(self):
        """Test registering a tool."""
        from mcp_server.registry import ToolRegistry

        registry = ToolRegistry()
        registry.register(ToolDefinition(name="buildcontext", description="Build"), _noop)

        assert registry.get("buildcontext") is not None
        assert "buildcontext" in registry
        assert registry.names() == ["buildcontext"]

    def test_register_duplicate_tool_raises(self):
        """Test that registering duplicate tool raises error."""
        from mcp_server.registry import ToolRegistry

        registry = ToolRegistry()
        tool = ToolDefinition(name="buildcontext", description="Build")
        registry.register(tool, _noop)

        with pytest.raises(ValueError, match="already registered"):
            registry.register(tool, _noop)

    def test_update_description_keeps_schema_and_handler(self):
        """Test that re-registering only changes the description."""
        from mcp_server.registry import ToolRegistry

        registry = ToolRegistry()
        schema = {"type": "object", "properties": {"domain": {"type": "string"}}, "required": ["domain"]}
        registry.register(ToolDefinition(name="setActiveDomain", description="Old", input_schema=schema), _noop)

        registry.update_description("setActiveDomain", "New")

        entry = registry.get("setActiveDomain")
        assert entry.definition.description == "New"
        assert entry.definition.input_schema == schema
        assert entry.handler is _noop

    def test_validate_input(self):
        """Test input validation against schema."""
        from mcp_server.registry import ToolRegistry

        registry = ToolRegistry()
        registry.register(ToolDefinition(
            name="buildcontext",
            description="Build",
            input_schema={
                "type": "object",
                "properties": {
                    "type": {"type": "string", "enum": ["entities", "relations", "observations"]},
                    "data": {},
                },
                "required": ["type"]
            }
        ), _noop)

        is_valid, errors = registry.validate_input("buildcontext", {"type": "entities", "data": [1, "x"]})
        assert is_valid
        assert errors == []

        is_valid, errors = registry.validate_input("buildcontext", {"type": "widgets"})
        assert not is_valid
        assert len(errors) == 1

        is_valid, errors = registry.validate_input("missing", {})
        assert not is_valid

    def test_object_schema(self):
        """Test schema building from parameters."""
        from shared.schema import Param, object_schema

        schema = object_schema(
            Param("type", "string", "Kind", enum=["graph", "search"]),
            Param("params", description="Anything", required=False),
        )

        assert schema["required"] == ["type"]
        assert schema["properties"]["type"]["enum"] == ["graph", "search"]
        assert "type" not in schema["properties"]["params"]


class TestSessionTable:
    """Tests for the router session table."""

    @pytest.mark.asyncio
    async def test_create_issues_unique_ids(self):
        """Test that session ids are never reused."""
        from mcp_server.sessions import SessionTable

        table = SessionTable()
        ids = {(await table.create("student")).id for _ in range(50)}

        assert len(ids) == 50
        assert all(i.startswith("cm_session_student_") for i in ids)

    @pytest.mark.asyncio
    async def test_first_active_is_first_match(self):
        """Test that the first active session wins, not the newest."""
        from mcp_server.sessions import SessionTable

        table = SessionTable()
        first = await table.create("developer")
        await table.create("developer")
        await table.create("project")

        assert table.first_active("developer") is first

        await table.deactivate(first)
        assert table.first_active("developer") is not first
        assert table.get(first.id) is first

    @pytest.mark.asyncio
    async def test_set_entity_defaults_type(self):
        """Test that a missing entity type is recorded as unknown."""
        from mcp_server.sessions import SessionTable

        table = SessionTable()
        session = await table.create("developer")
        await table.set_entity(session, "Parser", None)

        assert session.entity_name == "Parser"
        assert session.entity_type == "unknown"

    def test_domain_session_id_styles(self):
        """Test router to domain session id translation."""
        from mcp_server.sessions import SessionTable

        session = Session(id="cm_session_developer_1_1000", domain="developer")

        assert SessionTable("composite").domain_session_id(session) == (
            "developer_session_cm_session_developer_1_1000"
        )
        assert SessionTable("passthrough").domain_session_id(session) == "cm_session_developer_1_1000"

        session.domain_session_id = "dev_42"
        assert SessionTable("composite").domain_session_id(session) == "dev_42"

    @pytest.mark.asyncio
    async def test_stats(self):
        """Test session statistics."""
        from mcp_server.sessions import SessionTable

        table = SessionTable()
        session = await table.create("developer")
        await table.create("student")
        await table.deactivate(session)

        assert table.get_stats() == {"total_sessions": 2, "active_sessions": 1}
        assert len(table.list_sessions(active_only=True)) == 1
        assert len(table.list_sessions(domain="developer")) == 1


class TestExtractDomainSessionId:
    """Tests for reading the domain's session id from startsession."""

    def test_structured_field_wins(self):
        from mcp_server.sessions import extract_domain_session_id

        result = ToolResult.ok(
            "startsession",
            "Session ID: from_text_1",
            structured_content={"sessionId": "structured_1"}
        )
        assert extract_domain_session_id(result) == "structured_1"

    def test_session_id_phrase(self):
        from mcp_server.sessions import extract_domain_session_id

        result = ToolResult.ok("startsession", "Recent projects: Apollo\n\nSession ID: developer_1712_ab12.")
        assert extract_domain_session_id(result) == "developer_1712_ab12"

    def test_trailing_entity_is_not_an_id(self):
        from mcp_server.sessions import extract_domain_session_id

        result = ToolResult.ok("startsession", "Session started.\nRecent components:\n- parser_v2")
        assert extract_domain_session_id(result) is None

    def test_no_id(self):
        from mcp_server.sessions import extract_domain_session_id

        assert extract_domain_session_id(ToolResult.ok("startsession", "Welcome back")) is None
        assert extract_domain_session_id(
            ToolResult.failure("startsession", "Error: session_1 failed")
        ) is None


class TestDescriptionRefresher:
    """Tests for per-domain tool descriptions."""

    def _registry(self):
        from mcp_server.registry import ToolRegistry

        registry = ToolRegistry()
        registry.register(ToolDefinition(name="buildcontext", description="Initial"), _noop)
        registry.register(ToolDefinition(name="relateCrossDomain", description="Initial"), _noop)
        registry.register(ToolDefinition(name="mystery", description="Initial"), _noop)
        return registry

    @pytest.mark.asyncio
    async def test_lookup_order(self, tmp_path):
        """Test domain file, then shared file, then fallback."""
        from mcp_server.descriptions import DescriptionRefresher

        (tmp_path / "student").mkdir()
        (tmp_path / "default").mkdir()
        (tmp_path / "student" / "buildcontext.txt").write_text("Student build\n")
        (tmp_path / "default" / "buildcontext.txt").write_text("Shared build")
        (tmp_path / "default" / "relateCrossDomain.txt").write_text("Shared relate")

        registry = self._registry()
        refreshed = await DescriptionRefresher(registry, tmp_path).refresh("student")

        assert refreshed["buildcontext"] == "Student build"
        assert refreshed["relateCrossDomain"] == "Shared relate"
        assert refreshed["mystery"] == "mystery tool for the student domain."

        refreshed = await DescriptionRefresher(registry, tmp_path).refresh("developer")
        assert refreshed["buildcontext"] == "Shared build"

    @pytest.mark.asyncio
    async def test_missing_directory_falls_back(self, tmp_path):
        """Test that a missing description directory is not an error."""
        from mcp_server.descriptions import DescriptionRefresher

        registry = self._registry()
        await DescriptionRefresher(registry, tmp_path / "nowhere").refresh("project")

        assert registry.get("buildcontext").definition.description == "buildcontext tool for the project domain."

    @pytest.mark.asyncio
    async def test_packaged_descriptions(self):
        """Test that every built-in domain ships its own descriptions."""
        from domains.registry import BUILTIN_DOMAINS
        from mcp_server.descriptions import DescriptionRefresher, fallback_description

        refresher = DescriptionRefresher(self._registry())
        texts = set()
        for entry in BUILTIN_DOMAINS:
            text = await refresher.load(entry["name"], "buildcontext")
            assert text != fallback_description("buildcontext", entry["name"])
            texts.add(text)

        assert len(texts) == len(BUILTIN_DOMAINS)


class TestToolRouter:
    """Tests for the router tool handlers."""

    @pytest.mark.asyncio
    async def test_set_active_domain_case_insensitive(self, router):
        """Test that domain names match in any casing."""
        result = await router.execute("setActiveDomain", {"domain": "Developer"})

        assert result.status == ToolResultStatus.SUCCESS
        assert result.text == "Active domain set to: developer"
        assert router.context.active_domain == "developer"

    @pytest.mark.asyncio
    async def test_unknown_domain_changes_nothing(self, router):
        """Test that unknown domains leave state untouched."""
        await router.execute("setActiveDomain", {"domain": "student"})

        result = await router.execute("setActiveDomain", {"domain": "astronomy"})
        assert result.is_error
        assert result.text == (
            "Error: Domain 'astronomy' not found. Available domains: "
            "developer, project, student, qualitativeresearch, quantitativeresearch"
        )

        result = await router.execute("startsession", {"domain": "astronomy"})
        assert result.is_error

        result = await router.execute("relateCrossDomain", {
            "fromDomain": "astronomy", "fromEntity": "A",
            "toDomain": "project", "toEntity": "B", "relationType": "x",
        })
        assert result.text == "Error: Source domain 'astronomy' not found."

        result = await router.execute("relateCrossDomain", {
            "fromDomain": "project", "fromEntity": "A",
            "toDomain": "astronomy", "toEntity": "B", "relationType": "x",
        })
        assert result.text == "Error: Target domain 'astronomy' not found."

        assert router.context.active_domain == "student"
        assert len(router.context.sessions) == 0

    @pytest.mark.asyncio
    async def test_connect_failure_keeps_active_domain(self, router, connections):
        """Test that an unreachable domain is not activated."""
        await router.execute("setActiveDomain", {"domain": "developer"})
        connections["project"].reachable = False

        result = await router.execute("setActiveDomain", {"domain": "project"})

        assert result.status == ToolResultStatus.UNAVAILABLE
        assert result.text == "Error: Could not connect to domain server for 'project'"
        assert router.context.active_domain == "developer"

    @pytest.mark.asyncio
    async def test_start_session(self, router, connections):
        """Test session creation and forwarding."""
        connections["student"].responses["startsession"] = ToolResult.ok(
            "startsession", "Upcoming: Calculus exam\nSession ID: stu_123"
        )

        result = await router.execute("startsession", {"domain": "student"})

        session = router.context.sessions.list_sessions()[0]
        assert result.status == ToolResultStatus.SUCCESS
        assert result.text.startswith("Upcoming: Calculus exam")
        assert result.text.endswith(f"New Context Manager session started with session ID: {session.id}")
        assert session.domain == "student"
        assert session.active
        assert session.domain_session_id == "stu_123"
        assert router.context.active_domain == "student"
        assert connections["student"].calls_to("startsession") == [{}]

        second = await router.execute("startsession", {"domain": "student"})
        assert second.status == ToolResultStatus.SUCCESS
        ids = [s.id for s in router.context.sessions.list_sessions()]
        assert len(set(ids)) == 2

    @pytest.mark.asyncio
    async def test_start_session_domain_error(self, router, connections):
        """Test that a failed domain startsession leaves no active session."""
        connections["project"].responses["startsession"] = ToolResult.failure("startsession", "disk full")

        result = await router.execute("startsession", {"domain": "project"})

        assert result.is_error
        assert result.text == "disk full"
        assert router.context.sessions.first_active("project") is None

    @pytest.mark.asyncio
    async def test_context_tools_need_active_domain(self, router, connections):
        """Test the no-active-domain error."""
        for tool, args in [
            ("buildcontext", {"type": "entities", "data": {}}),
            ("deletecontext", {"type": "relations"}),
            ("advancedcontext", {"type": "graph"}),
            ("loadcontext", {"entityName": "A"}),
            ("listAllEntities", {}),
        ]:
            result = await router.execute(tool, args)
            assert result.text == "Error: No active domain set. Use setActiveDomain tool first."

        assert all(not c.calls for c in connections.values())

    @pytest.mark.asyncio
    async def test_build_context_forwards_verbatim(self, router, connections):
        """Test that payloads reach the active domain unchanged."""
        await router.execute("setActiveDomain", {"domain": "project"})
        data = {"entities": [{"name": "Apollo", "entityType": "project", "anything": [1, 2]}]}

        result = await router.execute("buildcontext", {"type": "entities", "data": data})
        await router.execute("deletecontext", {"type": "observations", "data": ["x"]})
        await router.execute("advancedcontext", {"type": "search", "params": {"query": "Apollo"}})

        assert result.status == ToolResultStatus.SUCCESS
        project = connections["project"]
        assert project.calls_to("buildcontext") == [{"type": "entities", "data": data}]
        assert project.calls_to("deletecontext") == [{"type": "observations", "data": ["x"]}]
        assert project.calls_to("advancedcontext") == [{"type": "search", "params": {"query": "Apollo"}}]

    @pytest.mark.asyncio
    async def test_invalid_enum_type(self, router, connections):
        """Test that the type enum is enforced at the router."""
        await router.execute("setActiveDomain", {"domain": "project"})

        result = await router.execute("buildcontext", {"type": "widgets", "data": {}})

        assert result.status == ToolResultStatus.VALIDATION_ERROR
        assert connections["project"].calls_to("buildcontext") == []

    @pytest.mark.asyncio
    async def test_unknown_tool(self, router):
        result = await router.execute("dropDatabase", {})
        assert result.status == ToolResultStatus.NOT_FOUND

    @pytest.mark.asyncio
    async def test_extra_arguments_ignored(self, router, connections):
        """Test that unexpected arguments do not break a handler."""
        result = await router.execute("setActiveDomain", {"domain": "student", "verbose": True})
        assert result.status == ToolResultStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_load_context_without_session(self, router, connections):
        """Test that loadcontext needs a started session."""
        await router.execute("setActiveDomain", {"domain": "developer"})

        result = await router.execute("loadcontext", {"entityName": "Parser"})

        assert result.text == "Error: No active Context Manager session found. Start a session first."
        assert len(router.context.sessions) == 0
        assert connections["developer"].calls_to("loadcontext") == []

    @pytest.mark.asyncio
    async def test_load_context(self, router, connections):
        """Test loadcontext session selection and id translation."""
        await router.execute("startsession", {"domain": "developer"})
        session = router.context.sessions.list_sessions()[0]

        result = await router.execute("loadcontext", {"entityName": "Parser", "entityType": "component"})

        assert result.status == ToolResultStatus.SUCCESS
        assert session.entity_name == "Parser"
        assert session.entity_type == "component"
        assert connections["developer"].calls_to("loadcontext") == [{
            "entityName": "Parser",
            "entityType": "component",
            "sessionId": f"developer_session_{session.id}",
        }]

    @pytest.mark.asyncio
    async def test_load_context_ignores_entity_names_in_start_text(self, router, connections):
        connections["developer"].responses["startsession"] = ToolResult.ok(
            "startsession", "Session started.\nRecent components:\n- parser_v2"
        )
        await router.execute("startsession", {"domain": "developer"})
        session = router.context.sessions.list_sessions()[0]

        await router.execute("loadcontext", {"entityName": "Parser"})

        assert session.domain_session_id is None
        assert connections["developer"].calls_to("loadcontext")[0]["sessionId"] == (
            f"developer_session_{session.id}"
        )

    @pytest.mark.asyncio
    async def test_load_context_passthrough_ids(self, make_router, connections):
        router = make_router(session_id_style="passthrough")
        await router.execute("startsession", {"domain": "developer"})
        session = router.context.sessions.list_sessions()[0]

        await router.execute("loadcontext", {"entityName": "Parser", "sessionId": session.id})

        assert session.entity_type == "unknown"
        assert connections["developer"].calls_to("loadcontext") == [
            {"entityName": "Parser", "sessionId": session.id}
        ]

    @pytest.mark.asyncio
    async def test_load_context_uses_session_domain(self, router, connections):
        """Test that an explicit session routes to its own domain."""
        await router.execute("startsession", {"domain": "student"})
        session = router.context.sessions.list_sessions()[0]
        await router.execute("setActiveDomain", {"domain": "project"})

        await router.execute("loadcontext", {"entityName": "Calculus", "sessionId": session.id})

        assert len(connections["student"].calls_to("loadcontext")) == 1
        assert connections["project"].calls_to("loadcontext") == []

    @pytest.mark.asyncio
    async def test_end_session(self, router, connections):
        """Test staged endsession and deactivation."""
        await router.execute("startsession", {"domain": "developer"})
        session = router.context.sessions.list_sessions()[0]
        stage = {
            "sessionId": session.id,
            "stage": "summary",
            "stageNumber": 1,
            "totalStages": 2,
            "nextStageNeeded": True,
            "analysis": "Refactored the parser",
        }

        result = await router.execute("endsession", stage)
        assert result.status == ToolResultStatus.SUCCESS
        assert session.active

        forwarded = connections["developer"].calls_to("endsession")[0]
        assert forwarded == {**stage, "sessionId": f"developer_session_{session.id}"}

        result = await router.execute("endsession", {**stage, "stageNumber": 2, "nextStageNeeded": False})
        assert result.text.endswith(f"Context Manager session {session.id} has been ended.")
        assert not session.active

        # Lookup still works for the inactive session
        result = await router.execute("endsession", {**stage, "stageNumber": 2, "nextStageNeeded": False})
        assert result.status == ToolResultStatus.SUCCESS
        assert len(connections["developer"].calls_to("endsession")) == 3

    @pytest.mark.asyncio
    async def test_end_session_rejected_final_stage_still_ends(self, router, connections):
        await router.execute("startsession", {"domain": "developer"})
        session = router.context.sessions.list_sessions()[0]
        connections["developer"].responses["endsession"] = ToolResult.failure("endsession", "Invalid stage")

        result = await router.execute("endsession", {
            "sessionId": session.id, "stage": "x", "stageNumber": 1,
            "totalStages": 1, "nextStageNeeded": False,
        })

        assert result.is_error
        assert result.text == "Invalid stage"
        assert not session.active

    @pytest.mark.asyncio
    async def test_end_unknown_session(self, router):
        result = await router.execute("endsession", {
            "sessionId": "nope", "stage": "x", "stageNumber": 1,
            "totalStages": 1, "nextStageNeeded": False,
        })
        assert result.text == "Error: Context Manager session with ID 'nope' not found."

    @pytest.mark.asyncio
    async def test_list_all_entities_fallback(self, router, connections):
        """Test fallback to the registry's entity types."""
        await router.execute("setActiveDomain", {"domain": "qualitativeresearch"})
        connections["qualitativeresearch"].responses["listAllEntities"] = ToolResult.failure(
            "listAllEntities", "Unknown tool: listAllEntities"
        )

        result = await router.execute("listAllEntities", {})

        assert result.status == ToolResultStatus.SUCCESS
        assert result.text == (
            "Available entity types in qualitativeresearch domain: "
            "study, participant, interview, code, theme"
        )

    @pytest.mark.asyncio
    async def test_list_all_entities_pass_through(self, router, connections):
        await router.execute("setActiveDomain", {"domain": "developer"})
        connections["developer"].responses["listAllEntities"] = ToolResult.ok("listAllEntities", "Parser, Lexer")

        result = await router.execute("listAllEntities", {})

        assert result.text == "Parser, Lexer"

    def test_list_all_entities_can_be_disabled(self, make_router):
        router = make_router(list_all_entities=False)
        assert "listAllEntities" not in router.registry

    @pytest.mark.asyncio
    async def test_handler_exception_becomes_error(self, router, connections):
        """Test that nothing escapes execute."""
        def explode(arguments):
            raise RuntimeError("boom")

        await router.execute("setActiveDomain", {"domain": "developer"})
        connections["developer"].responses["advancedcontext"] = explode

        result = await router.execute("advancedcontext", {"type": "graph"})

        assert result.is_error
        assert result.error_code == "EXECUTION_ERROR"
        assert "boom" in result.text

    @pytest.mark.asyncio
    async def test_descriptions_follow_active_domain(self, router):
        """Test that activation refreshes descriptions but not schemas."""
        before = {t.name: t for t in router.registry.list_tools()}

        await router.execute("setActiveDomain", {"domain": "student"})
        student = {t.name: t for t in router.registry.list_tools()}
        await router.execute("setActiveDomain", {"domain": "quantitativeresearch"})
        quant = {t.name: t for t in router.registry.list_tools()}

        assert list(before) == list(student) == list(quant)
        for name in before:
            assert before[name].input_schema == student[name].input_schema == quant[name].input_schema
        assert student["buildcontext"].description != quant["buildcontext"].description
        assert "course" in student["buildcontext"].description

    @pytest.mark.asyncio
    async def test_descriptions_refresh_disabled(self, make_router):
        router = make_router(description_refresh=False)
        before = {t.name: t.description for t in router.registry.list_tools()}

        await router.execute("setActiveDomain", {"domain": "student"})

        assert {t.name: t.description for t in router.registry.list_tools()} == before

    @pytest.mark.asyncio
    async def test_tools_changed_callback(self, router):
        calls = []

        async def notify():
            calls.append(router.context.active_domain)

        router.context.on_tools_changed = notify
        await router.execute("setActiveDomain", {"domain": "project"})

        assert calls == ["project"]

    @pytest.mark.asyncio
    async def test_read_resource_forwards_to_active_domain(self, router):
        contents = await router.read_resource("memory://graph")
        assert "No active domain set" in contents[0].text

        await router.execute("setActiveDomain", {"domain": "developer"})
        contents = await router.read_resource("memory://graph")
        assert contents[0].text == "developer resource memory://graph"


class TestCrossDomainRelations:
    """Tests for relateCrossDomain."""

    ARGS = {
        "fromDomain": "developer",
        "fromEntity": "A",
        "toDomain": "Project",
        "toEntity": "B",
        "relationType": "manages",
    }

    @pytest.mark.asyncio
    async def test_writes_both_sides(self, router, connections):
        result = await router.execute("relateCrossDomain", self.ARGS)

        assert result.status == ToolResultStatus.SUCCESS
        assert connections["developer"].calls_to("buildcontext") == [{
            "type": "observations",
            "data": {"observations": [{
                "entityName": "A",
                "contents": ["Related to B (project domain) via manages"],
            }]},
        }]
        assert connections["project"].calls_to("buildcontext") == [{
            "type": "observations",
            "data": {"observations": [{
                "entityName": "B",
                "contents": ["Related from A (developer domain) via manages"],
            }]},
        }]
        assert router.context.active_domain is None

    @pytest.mark.asyncio
    async def test_unreachable_target_writes_nothing(self, router, connections):
        connections["project"].reachable = False

        result = await router.execute("relateCrossDomain", self.ARGS)

        assert result.text == "Error: Could not connect to domain server for 'project'"
        assert connections["developer"].calls == []

    @pytest.mark.asyncio
    async def test_source_write_failure_stops(self, router, connections):
        connections["developer"].responses["buildcontext"] = ToolResult.failure("buildcontext", "Entity A not found")

        result = await router.execute("relateCrossDomain", self.ARGS)

        assert result.error_code == "SOURCE_WRITE_FAILED"
        assert connections["project"].calls == []

    @pytest.mark.asyncio
    async def test_target_write_failure_reports_one_sided(self, router, connections):
        connections["project"].responses["buildcontext"] = ToolResult.failure("buildcontext", "Entity B not found")

        result = await router.execute("relateCrossDomain", self.ARGS)

        assert result.error_code == "TARGET_WRITE_FAILED"
        assert "recorded on A (developer domain) but not on B (project domain)" in result.text

    def test_observation_round_trip(self):
        from mcp_server.crossref import inbound_observation, outbound_observation, parse_observation

        outbound = parse_observation(outbound_observation("B", "project", "manages"))
        assert (outbound.direction, outbound.entity, outbound.domain, outbound.relation_type) == (
            "to", "B", "project", "manages"
        )

        inbound = parse_observation(inbound_observation("Data Pipeline (v2)", "developer", "depends on"))
        assert inbound.direction == "from"
        assert inbound.entity == "Data Pipeline (v2)"
        assert inbound.relation_type == "depends on"

        assert parse_observation("Reviewed on Monday") is None


class TestMcpServer:
    """Tests for the MCP server wiring."""

    @pytest.mark.asyncio
    async def test_list_tools(self, router):
        from mcp import types
        from mcp_server.server import create_mcp_server

        server = create_mcp_server(router)
        response = await server.request_handlers[types.ListToolsRequest](
            types.ListToolsRequest(method="tools/list")
        )

        names = [tool.name for tool in response.root.tools]
        assert names == [
            "setActiveDomain", "startsession", "endsession", "buildcontext", "deletecontext",
            "loadcontext", "advancedcontext", "relateCrossDomain", "listAllEntities",
        ]

    @pytest.mark.asyncio
    async def test_domains_resource(self, router):
        import json

        from mcp import types
        from mcp_server.server import create_mcp_server

        server = create_mcp_server(router)
        response = await server.request_handlers[types.ReadResourceRequest](
            types.ReadResourceRequest(
                method="resources/read",
                params=types.ReadResourceRequestParams(uri="domains://list")
            )
        )

        domains = json.loads(response.root.contents[0].text)
        assert [d["name"] for d in domains] == router.context.domains.names()
        assert all("entityTypes" in d for d in domains)
        assert domains[0]["entityTypes"] == ["project", "component", "task", "issue", "commit"]

    @pytest.mark.asyncio
    async def test_tools_changed_outside_request(self, router):
        """Test that a refresh without a client request does not fail."""
        from mcp_server.server import create_mcp_server

        create_mcp_server(router)
        result = await router.execute("setActiveDomain", {"domain": "developer"})

        assert result.status == ToolResultStatus.SUCCESS

    def test_tool_result_to_mcp(self):
        result = ToolResult.failure("buildcontext", "Error: nope").to_mcp()

        assert result.isError
        assert result.content[0].text == "Error: nope"
