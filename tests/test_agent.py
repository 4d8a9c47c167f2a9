"""V1 and V2 agent runners with a scripted LLM."""
from unittest.mock import AsyncMock, patch

import pytest

from helpers import llm_message, make_user, tool_call
from studiocrm.db.models import AgentSession, Lead
from studiocrm.services import agent
from studiocrm.services.llm import LLMError

LEAD_ARGS = {"name": "Agent Lead", "email": "agent.lead@example.com"}


def scripted(*replies):
    return patch("studiocrm.services.llm.chat_completion", new=AsyncMock(side_effect=list(replies)))


class TestResolveMode:
    @pytest.mark.parametrize(
        "role, requested, expected",
        [
            ("viewer", "auto_full", "read_only"),
            ("staff", None, "read_only"),
            ("manager", "auto_full", "auto_safe"),
            ("manager", None, "auto_safe"),
            ("admin", "auto_full", "auto_full"),
            ("admin", "read_only", "read_only"),
            ("admin", "bogus", "auto_safe"),
        ],
    )
    def test_clamped_to_role(self, role, requested, expected):
        assert agent.resolve_mode(role, requested) == expected


class TestRankTools:
    def test_overlap_first(self):
        tools = [
            {"type": "function", "function": {"name": "search_clients", "description": "Search clients"}},
            {"type": "function", "function": {"name": "list_invoices", "description": "List invoices by status"}},
            {"type": "function", "function": {"name": "mark_overdue", "description": "Mark overdue invoices"}},
        ]
        ranked = agent.rank_tools("Show me overdue invoices", tools)
        assert [t["function"]["name"] for t in ranked] == ["mark_overdue", "list_invoices", "search_clients"]


class TestAgentV1:
    @pytest.mark.asyncio
    async def test_tool_round_then_answer(self, db, admin_user, client_row):
        with scripted(
            llm_message(tool_calls=[tool_call("search_clients", {"search": "Anna"})]),
            llm_message("Anna Berger is a client."),
        ) as mock:
            reply = await agent.run_agent_v1(db, admin_user, "Who is Anna?")

        assert reply.text == "Anna Berger is a client."
        assert reply.tool_calls == [{"tool": "search_clients", "args": {"search": "Anna"}, "ok": True, "error": None}]
        assert mock.await_count == 2
        second_messages = mock.await_args_list[1].args[0]
        assert second_messages[-1]["role"] == "tool"
        assert second_messages[-1]["tool_call_id"] == "call_1"

        session = db.get(AgentSession, reply.session_id)
        assert [m.role for m in session.messages] == ["user", "assistant"]
        assert session.kind == "v1"

    @pytest.mark.asyncio
    async def test_no_guardrails(self, db):
        viewer = make_user(db, "viewer")
        with scripted(llm_message(tool_calls=[tool_call("create_lead", LEAD_ARGS)]), llm_message("Created.")):
            reply = await agent.run_agent_v1(db, viewer, "Add a lead")
        assert reply.tool_calls[0]["ok"] is True
        assert db.query(Lead).count() == 1

    @pytest.mark.asyncio
    async def test_tool_errors_surface_without_text(self, db, admin_user):
        with scripted(llm_message(tool_calls=[tool_call("find_lead", {"lead_id": 77})]), llm_message("")):
            reply = await agent.run_agent_v1(db, admin_user, "lead 77?")
        assert reply.text.startswith("❌ find_lead: crm:data_not_found")

    @pytest.mark.asyncio
    async def test_llm_failure(self, db, admin_user):
        with scripted(LLMError("down")):
            reply = await agent.run_agent_v1(db, admin_user, "hi")
        assert reply.text == agent.UNAVAILABLE_TEXT
        assert reply.error == "down"

    @pytest.mark.asyncio
    async def test_history_carried(self, db, admin_user):
        with scripted(llm_message("first")):
            first = await agent.run_agent_v1(db, admin_user, "one")
        with scripted(llm_message("second")) as mock:
            await agent.run_agent_v1(db, admin_user, "two", session_id=first.session_id)
        sent = mock.await_args.args[0]
        assert [m["content"] for m in sent[1:]] == ["one", "first", "two"]


class TestAgentV2:
    @pytest.mark.asyncio
    async def test_plan_execute_summarise(self, db, admin_user):
        with scripted(
            llm_message(tool_calls=[tool_call("create_lead", LEAD_ARGS)]),
            llm_message("Lead created."),
        ) as mock:
            reply = await agent.run_agent_v2(db, admin_user, "Add a lead", mode="auto_full")

        assert reply.text == "Lead created."
        assert reply.plan == [{"tool": "create_lead", "args": LEAD_ARGS}]
        assert reply.tool_calls[0]["ok"] is True
        assert db.query(Lead).count() == 1
        # the summary call gets no tools
        assert len(mock.await_args_list[1].args) == 1

    @pytest.mark.asyncio
    async def test_tools_limited_to_scopes(self, db):
        viewer = make_user(db, "viewer")
        with scripted(llm_message("ok")) as mock:
            await agent.run_agent_v2(db, viewer, "Add a lead")
        offered = {t["function"]["name"] for t in mock.await_args.args[1]}
        assert "create_lead" not in offered
        assert "list_leads" in offered

    @pytest.mark.asyncio
    async def test_confirm_flow(self, db):
        manager = make_user(db, "manager")
        with scripted(llm_message(tool_calls=[tool_call("create_lead", LEAD_ARGS)])):
            reply = await agent.run_agent_v2(db, manager, "Add a lead", mode="auto_full")

        assert reply.confirm_required["tool"] == "create_lead"
        assert reply.text.startswith("Please confirm")
        assert db.query(Lead).count() == 0

        done = await agent.confirm_pending(db, manager, reply.session_id)
        assert done.text == "Done: create_lead completed."
        assert db.query(Lead).count() == 1

        with pytest.raises(ValueError):
            await agent.confirm_pending(db, manager, reply.session_id)

    @pytest.mark.asyncio
    async def test_dry_run(self, db, admin_user):
        with scripted(llm_message(tool_calls=[tool_call("create_lead", LEAD_ARGS)]), llm_message("")):
            reply = await agent.run_agent_v2(db, admin_user, "Add a lead", dry_run=True)
        assert reply.tool_calls[0]["simulated"] is True
        assert reply.text == "✅ create_lead (simulated)"
        assert db.query(Lead).count() == 0
        assert db.get(AgentSession, reply.session_id).kind == "shadow"

    @pytest.mark.asyncio
    async def test_bad_json_args(self, db, admin_user):
        with scripted(llm_message(tool_calls=[tool_call("create_lead", "{not json")]), LLMError("down")):
            reply = await agent.run_agent_v2(db, admin_user, "Add a lead")
        assert reply.tool_calls[0]["code"] == "bad_json_args"
        assert reply.text == "❌ create_lead: bad_json_args"
        assert reply.error == "down"

    @pytest.mark.asyncio
    async def test_planning_failure(self, db, admin_user):
        with scripted(LLMError("timeout")):
            reply = await agent.run_agent_v2(db, admin_user, "hi")
        assert reply.text == agent.UNAVAILABLE_TEXT
        assert reply.error == "timeout"

    @pytest.mark.asyncio
    async def test_foreign_session_rejected(self, db, admin_user):
        other = make_user(db, "manager")
        with scripted(llm_message("hi")):
            reply = await agent.run_agent_v2(db, admin_user, "hello")
        with pytest.raises(PermissionError):
            await agent.run_agent_v2(db, other, "mine now", session_id=reply.session_id)
        with pytest.raises(PermissionError):
            agent.session_detail(db, reply.session_id, other)

    @pytest.mark.asyncio
    async def test_session_detail(self, db, admin_user):
        with scripted(llm_message(tool_calls=[tool_call("list_leads", {})]), llm_message("none")):
            reply = await agent.run_agent_v2(db, admin_user, "leads?")
        detail = agent.session_detail(db, reply.session_id, admin_user)
        assert [m["role"] for m in detail["messages"]] == ["user", "assistant"]
        assert [a["tool"] for a in detail["audit"]] == ["list_leads"]

    def test_missing_session(self, db):
        with pytest.raises(LookupError):
            agent.session_detail(db, "sess_missing")
