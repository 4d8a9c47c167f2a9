from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from pydantic import BaseModel

from studiocrm.db.errors import CrmError, CrmNotFound
from studiocrm.services.tools.context import ToolContext
from studiocrm.services.tools.errors import NotFoundError, ToolError

RISK_LEVELS = ("low", "medium", "high")

ToolHandler = Callable[[dict, ToolContext], Awaitable[Any]]


class BaseArgs(BaseModel):
    model_config = {
        "extra": "ignore",
    }


class NoArgs(BaseArgs):
    pass


@dataclass(frozen=True)
class ToolDef:
    name: str
    description: str
    args_model: type[BaseModel]
    handler: ToolHandler
    authz: list[str] = field(default_factory=list)
    risk: str = "low"
    side_effects: bool = False
    category: str = "general"

    def __post_init__(self) -> None:
        if self.risk not in RISK_LEVELS:
            raise ValueError(f"Unknown risk level for {self.name}: {self.risk}")

    def parameters(self) -> dict[str, Any]:
        schema = _strip_titles(self.args_model.model_json_schema())
        schema.setdefault("type", "object")
        schema.setdefault("properties", {})
        return schema

    def openai_schema(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters(),
            },
        }


def _strip_titles(node: Any) -> Any:
    # "title" is dropped from schema nodes only, never from a properties map
    if isinstance(node, list):
        return [_strip_titles(v) for v in node]
    if not isinstance(node, dict):
        return node
    out = {}
    for k, v in node.items():
        if k in ("properties", "$defs"):
            out[k] = {name: _strip_titles(sub) for name, sub in v.items()}
        elif k == "title" and isinstance(v, str):
            continue
        else:
            out[k] = _strip_titles(v)
    return out


def crm_call(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run a data-layer function and turn its errors into tool errors."""
    try:
        return fn(*args, **kwargs)
    except CrmNotFound as e:
        raise NotFoundError(str(e)) from e
    except CrmError as e:
        raise ToolError(str(e), code="rejected") from e
