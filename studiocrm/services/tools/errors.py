from __future__ import annotations

from typing import Any


class ToolError(RuntimeError):
    """A user-facing tool error.

    We keep the message safe to show to end users and to the model.
    """

    def __init__(self, message: str, *, code: str = "tool_error"):
        super().__init__(message)
        self.code = code


class ToolValidationError(ToolError):
    def __init__(self, message: str):
        super().__init__(message, code="validation_error")


class UnknownToolError(ToolError):
    def __init__(self, tool: str):
        super().__init__(f"Unknown tool: {tool}", code="unknown_tool")
        self.tool = tool


class NotFoundError(ToolError):
    def __init__(self, message: str):
        super().__init__(message, code="not_found")


class AuthzError(ToolError):
    def __init__(self, tool: str, required: list[str], user_scopes: list[str]):
        missing = [s for s in required if s not in user_scopes]
        super().__init__(f"Missing scopes for {tool}: {', '.join(missing)}", code="forbidden")
        self.tool = tool
        self.required = list(required)
        self.user_scopes = list(user_scopes)


class ReadOnlyModeError(ToolError):
    def __init__(self, tool: str, risk: str):
        super().__init__(f"{tool} ({risk} risk) is not allowed in read_only mode", code="read_only")
        self.tool = tool
        self.risk = risk


class ConfirmRequiredError(ToolError):
    """Raised in auto_safe mode when a risky tool runs without __confirm."""

    def __init__(self, tool: str, args: dict[str, Any], reason: str):
        super().__init__(reason, code="confirm_required")
        self.tool = tool
        self.args = args
        self.reason = reason
