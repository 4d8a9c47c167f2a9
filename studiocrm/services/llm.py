"""Thin wrapper around an OpenAI-compatible /chat/completions endpoint."""

from __future__ import annotations

from typing import Any

import httpx

from studiocrm.core.config import settings
from studiocrm.core.logging_setup import get_logger

LOG = get_logger(__name__)


class LLMError(RuntimeError):
    """The chat-completion call failed or returned something unusable."""


def cap_messages(messages: list[dict[str, Any]], limit: int) -> list[dict[str, Any]]:
    """Keep a leading system message plus the last ``limit`` other messages."""
    if len(messages) <= limit:
        return list(messages)
    head = [messages[0]] if messages and messages[0].get("role") == "system" else []
    rest = messages[len(head):]
    tail = rest[-(limit - len(head)):] if limit > len(head) else []
    # a tool message must not lead the window without its assistant call
    while tail and tail[0].get("role") == "tool":
        tail = tail[1:]
    return head + tail


def build_payload(messages: list[dict[str, Any]], tools: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "model": settings.LLM_MODEL,
        "messages": cap_messages(messages, settings.LLM_MAX_CONTEXT_MESSAGES),
        "temperature": settings.LLM_TEMPERATURE,
        "max_tokens": settings.LLM_MAX_TOKENS,
    }
    if tools:
        if len(tools) > settings.LLM_MAX_TOOLS:
            LOG.info("Capping tools %s -> %s", len(tools), settings.LLM_MAX_TOOLS)
        payload["tools"] = tools[: settings.LLM_MAX_TOOLS]
        payload["tool_choice"] = "auto"
    return payload


async def chat_completion(
    messages: list[dict[str, Any]],
    tools: list[dict[str, Any]] | None = None,
    *,
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Returns the first choice's message: {"role", "content", "tool_calls"?}."""
    if not settings.LLM_API_KEY:
        raise LLMError("LLM_API_KEY is not configured")

    url = f"{settings.LLM_BASE_URL.rstrip('/')}/chat/completions"
    payload = build_payload(messages, tools)
    headers = {"Authorization": f"Bearer {settings.LLM_API_KEY}"}

    LOG.info(
        "Calling LLM model=%s msgs=%s tools=%s",
        settings.LLM_MODEL,
        len(payload["messages"]),
        len(payload.get("tools") or []),
    )

    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=httpx.Timeout(settings.LLM_TIMEOUT_SECONDS, connect=10.0))
    try:
        resp = await client.post(url, json=payload, headers=headers)
        resp.raise_for_status()
        data = resp.json()
    except httpx.HTTPStatusError as e:
        LOG.error("LLM HTTP %s: %s", e.response.status_code, e.response.text[:300])
        raise LLMError(f"LLM request failed with HTTP {e.response.status_code}") from e
    except httpx.HTTPError as e:
        LOG.exception("LLM transport error")
        raise LLMError(f"LLM request failed: {e}") from e
    except ValueError as e:
        raise LLMError("LLM returned invalid JSON") from e
    finally:
        if owns_client:
            await client.aclose()

    try:
        message = data["choices"][0]["message"]
    except (KeyError, IndexError, TypeError) as e:
        raise LLMError("LLM response has no choices") from e
    if not isinstance(message, dict):
        raise LLMError("LLM response message is not an object")
    return message
