"""Chat-completion client."""
import json

import httpx
import pytest

from studiocrm.core.config import settings
from studiocrm.services import llm
from studiocrm.services.llm import LLMError, build_payload, cap_messages, chat_completion


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestCapMessages:
    def test_short_history_untouched(self):
        msgs = [{"role": "user", "content": "hi"}]
        assert cap_messages(msgs, 5) == msgs

    def test_keeps_system_and_tail(self):
        msgs = [{"role": "system", "content": "s"}] + [{"role": "user", "content": str(i)} for i in range(10)]
        out = cap_messages(msgs, 4)
        assert out[0]["role"] == "system"
        assert [m["content"] for m in out[1:]] == ["7", "8", "9"]

    def test_orphaned_tool_messages_dropped(self):
        msgs = [
            {"role": "system", "content": "s"},
            {"role": "user", "content": "q"},
            {"role": "assistant", "content": None, "tool_calls": [{"id": "c"}]},
            {"role": "tool", "tool_call_id": "c", "content": "{}"},
            {"role": "tool", "tool_call_id": "d", "content": "{}"},
            {"role": "user", "content": "next"},
        ]
        out = cap_messages(msgs, 4)
        assert [m["role"] for m in out] == ["system", "user"]
        assert out[1]["content"] == "next"


class TestBuildPayload:
    def test_tools_capped(self):
        tools = [{"type": "function", "function": {"name": f"t{i}"}} for i in range(settings.LLM_MAX_TOOLS + 5)]
        payload = build_payload([{"role": "user", "content": "x"}], tools)
        assert len(payload["tools"]) == settings.LLM_MAX_TOOLS
        assert payload["tool_choice"] == "auto"
        assert payload["model"] == settings.LLM_MODEL

    def test_no_tools(self):
        payload = build_payload([{"role": "user", "content": "x"}])
        assert "tools" not in payload
        assert "tool_choice" not in payload


class TestChatCompletion:
    @pytest.mark.asyncio
    async def test_returns_first_message(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": "Hallo"}}]})

        async with _client(handler) as client:
            msg = await chat_completion([{"role": "user", "content": "hi"}], client=client)

        assert msg == {"role": "assistant", "content": "Hallo"}
        assert seen["url"] == "https://llm.test/v1/chat/completions"
        assert seen["auth"] == "Bearer test-key"
        assert seen["body"]["messages"][0]["content"] == "hi"

    @pytest.mark.asyncio
    async def test_http_error(self):
        async with _client(lambda r: httpx.Response(500, text="boom")) as client:
            with pytest.raises(LLMError, match="HTTP 500"):
                await chat_completion([{"role": "user", "content": "hi"}], client=client)

    @pytest.mark.asyncio
    async def test_no_choices(self):
        async with _client(lambda r: httpx.Response(200, json={"choices": []})) as client:
            with pytest.raises(LLMError, match="no choices"):
                await chat_completion([{"role": "user", "content": "hi"}], client=client)

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        async with _client(lambda r: httpx.Response(200, text="not json")) as client:
            with pytest.raises(LLMError, match="invalid JSON"):
                await chat_completion([{"role": "user", "content": "hi"}], client=client)

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(LLMError, match="request failed"):
                await chat_completion([{"role": "user", "content": "hi"}], client=client)

    @pytest.mark.asyncio
    async def test_missing_key(self, monkeypatch):
        monkeypatch.setattr(llm.settings, "LLM_API_KEY", None)
        with pytest.raises(LLMError, match="not configured"):
            await chat_completion([{"role": "user", "content": "hi"}])
