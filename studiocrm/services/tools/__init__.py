"""Agent tools.

Every tool is defined once (see ``base.ToolDef``) and registered with both
the legacy registry and the ToolBus. The ToolBus adds scope checks, mode
guardrails and auditing on top.
"""

from studiocrm.services.tools import (
    campaigns,
    capabilities,
    clients,
    galleries,
    invoices,
    leads,
    scheduling,
    search,
    vouchers,
)
from studiocrm.services.tools.base import ToolDef
from studiocrm.services.tools.bus import ToolBus, ToolResult
from studiocrm.services.tools.registry import ToolRegistry, execute_tool_call, surface_tool_errors

ALL_TOOLS: list[ToolDef] = [
    *leads.TOOLS,
    *clients.TOOLS,
    *invoices.TOOLS,
    *scheduling.TOOLS,
    *galleries.TOOLS,
    *vouchers.TOOLS,
    *campaigns.TOOLS,
    *search.TOOLS,
    *capabilities.TOOLS,
]

tool_registry = ToolRegistry()
tool_bus = ToolBus()
for _tool in ALL_TOOLS:
    tool_registry.register(_tool)
    tool_bus.register_tool(_tool)

__all__ = [
    "ALL_TOOLS",
    "ToolBus",
    "ToolDef",
    "ToolRegistry",
    "ToolResult",
    "execute_tool_call",
    "surface_tool_errors",
    "tool_bus",
    "tool_registry",
]
