"""ToolBus execution, guardrails and audit trail."""
import pytest

from studiocrm.db.models import AgentAudit, Lead
from studiocrm.services.tools import tool_bus
from studiocrm.services.tools.audit import get_audit_stats, get_session_audit, log_tool_call
from studiocrm.services.tools.base import NoArgs, ToolDef
from studiocrm.services.tools.bus import ToolBus
from studiocrm.services.tools.guardrails import (
    check_mode,
    explain_guardrail,
    recommended_mode,
    scopes_for_role,
    would_require_confirm,
)
from studiocrm.services.tools.errors import ConfirmRequiredError, ReadOnlyModeError

LEAD = {"name": "Bus Lead", "email": "bus@example.com"}


class TestRoles:
    def test_admin_has_everything(self):
        assert "ADMIN" in scopes_for_role("admin")
        assert "EMAIL_SEND" in scopes_for_role("photographer")
        assert "ADMIN" not in scopes_for_role("manager")

    def test_unknown_role_falls_back_to_viewer(self):
        assert scopes_for_role("intern") == ["CRM_READ", "INV_READ"]
        assert scopes_for_role(None) == ["CRM_READ", "INV_READ"]

    @pytest.mark.parametrize(
        "role, mode",
        [("owner", "auto_full"), ("manager", "auto_safe"), ("staff", "read_only"), ("viewer", "read_only")],
    )
    def test_recommended_mode(self, role, mode):
        assert recommended_mode(role) == mode


class TestModePolicy:
    def _tool(self, risk):
        return ToolDef(name="t", description="", args_model=NoArgs, handler=None, risk=risk)

    def test_low_risk_always_allowed(self, make_ctx):
        check_mode(self._tool("low"), make_ctx(mode="read_only"), {}, False)

    def test_read_only_blocks_writes(self, make_ctx):
        with pytest.raises(ReadOnlyModeError):
            check_mode(self._tool("medium"), make_ctx(mode="read_only"), {}, True)

    def test_auto_safe_needs_confirm(self, make_ctx):
        with pytest.raises(ConfirmRequiredError) as exc:
            check_mode(self._tool("high"), make_ctx(mode="auto_safe"), {"a": 1}, False)
        assert exc.value.args == ("t is high risk and needs explicit confirmation in auto_safe mode.",)
        check_mode(self._tool("high"), make_ctx(mode="auto_safe"), {}, True)

    def test_unknown_mode_is_read_only(self, make_ctx):
        with pytest.raises(ReadOnlyModeError):
            check_mode(self._tool("medium"), make_ctx(mode="yolo"), {}, True)

    def test_dry_run_skips_mode(self, make_ctx):
        check_mode(self._tool("high"), make_ctx(mode="read_only", dry_run=True), {}, False)

    def test_helpers(self):
        assert would_require_confirm("auto_safe", "medium") is True
        assert would_require_confirm("auto_full", "high") is False
        assert "blocked" in explain_guardrail("read_only", "high", "x")


class TestExecute:
    @pytest.mark.asyncio
    async def test_auto_full_runs_write(self, db, make_ctx):
        res = await tool_bus.execute_tool(make_ctx(mode="auto_full"), "create_lead", LEAD)
        assert res.ok is True
        assert res.data["email"] == "bus@example.com"
        assert db.query(Lead).count() == 1

    @pytest.mark.asyncio
    async def test_auto_safe_asks_then_runs(self, db, make_ctx):
        ctx = make_ctx(role="manager", mode="auto_safe")
        res = await tool_bus.execute_tool(ctx, "create_lead", LEAD)
        assert res.ok is False
        assert res.code == "confirm_required"
        assert res.data["tool"] == "create_lead"
        assert res.data["args"]["email"] == "bus@example.com"
        assert db.query(Lead).count() == 0

        res = await tool_bus.execute_tool(ctx, "create_lead", {**LEAD, "__confirm": True})
        assert res.ok is True
        assert db.query(Lead).count() == 1

    @pytest.mark.asyncio
    async def test_read_only_blocks(self, db, make_ctx):
        res = await tool_bus.execute_tool(make_ctx(mode="read_only"), "create_lead", {**LEAD, "__confirm": True})
        assert (res.ok, res.code) == (False, "read_only")

    @pytest.mark.asyncio
    async def test_scope_checked_before_mode(self, make_ctx):
        res = await tool_bus.execute_tool(make_ctx(role="viewer", mode="auto_full"), "create_lead", LEAD)
        assert res.code == "forbidden"

    @pytest.mark.asyncio
    async def test_validation_error(self, make_ctx):
        res = await tool_bus.execute_tool(make_ctx(), "create_lead", {"name": "No mail"})
        assert res.code == "validation_error"
        assert "email" in res.error

    @pytest.mark.asyncio
    async def test_unknown_tool(self, make_ctx):
        res = await tool_bus.execute_tool(make_ctx(), "nope", {})
        assert res.code == "unknown_tool"

    @pytest.mark.asyncio
    async def test_dry_run_simulates_writes(self, db, make_ctx):
        res = await tool_bus.execute_tool(make_ctx(mode="read_only", dry_run=True), "create_lead", LEAD)
        assert res.ok is True
        assert res.simulated is True
        assert res.data == {"would_execute": "create_lead", "args": LEAD}
        assert db.query(Lead).count() == 0

    @pytest.mark.asyncio
    async def test_dry_run_still_reads(self, db, make_ctx, client_row):
        ctx = make_ctx(dry_run=True, session_id="dry_read")
        res = await tool_bus.execute_tool(ctx, "search_clients", {"search": "anna"})
        assert res.ok is True
        assert res.simulated is False
        assert res.data[0]["id"] == client_row.id
        assert db.query(AgentAudit).filter(AgentAudit.session_id == "dry_read").one().simulated is False

    @pytest.mark.asyncio
    async def test_crash_becomes_tool_crash(self, make_ctx):
        bus = ToolBus()

        async def boom(args, ctx):
            raise ZeroDivisionError

        bus.register_tool(ToolDef(name="boom", description="", args_model=NoArgs, handler=boom))
        res = await bus.execute_tool(make_ctx(), "boom", {})
        assert (res.ok, res.code) == (False, "tool_crash")

    def test_duplicate_registration(self):
        bus = ToolBus()
        tool = ToolDef(name="x", description="", args_model=NoArgs, handler=None)
        bus.register_tool(tool)
        with pytest.raises(ValueError):
            bus.register_tool(tool)


class TestListing:
    def test_scope_filter(self):
        viewer = {t.name for t in tool_bus.list_tools(scopes_for_role("viewer"))}
        assert "list_leads" in viewer
        assert "create_lead" not in viewer
        assert "describe_capabilities" in viewer

    def test_stats(self):
        stats = tool_bus.get_stats()
        assert stats["total"] == len(tool_bus.list_tool_names())
        assert stats["total"] >= 40
        assert sum(stats["by_risk"].values()) == stats["total"]
        assert stats["by_risk"]["high"] >= 4


class TestAudit:
    @pytest.mark.asyncio
    async def test_every_call_audited(self, db, make_ctx):
        ctx = make_ctx(session_id="sess_audit")
        await tool_bus.execute_tool(ctx, "list_leads", {})
        await tool_bus.execute_tool(ctx, "create_lead", {"name": "x"})
        rows = get_session_audit(db, "sess_audit")
        assert [r["tool"] for r in rows] == ["list_leads", "create_lead"]
        assert [r["ok"] for r in rows] == [True, False]

    def test_result_truncated(self, db):
        log_tool_call(tool="big", args={}, ok=True, result={"blob": "x" * 20000})
        row = db.query(AgentAudit).one()
        assert len(row.result_json) == 8000

    def test_stats(self, db):
        log_tool_call(tool="a", args={}, ok=True, duration_ms=10)
        log_tool_call(tool="a", args={}, ok=False, duration_ms=30, error="bad")
        log_tool_call(tool="b", args={}, ok=True, duration_ms=20)
        stats = get_audit_stats(db)
        assert stats["total"] == 3
        assert stats["failed"] == 1
        assert stats["success_rate"] == 66.7
        assert stats["avg_duration_ms"] == 20
        assert stats["tool_usage"] == {"a": 2, "b": 1}

    def test_stats_empty(self, db):
        assert get_audit_stats(db)["success_rate"] == 0.0
