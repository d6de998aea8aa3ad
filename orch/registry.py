"""Process-wide tool registry, guarded invocation and the tool effect handler."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping, Optional

from orch import errmodel
from orch.contracts import EffectHandler, Event, Intent, State
from orch.tool import Tool, ValidateFunc, json_schema_validator

_lock = threading.RLock()
_tools: dict[str, Tool] = {}


def register_tool(tool: Optional[Tool]) -> None:
    """Register a tool under its descriptor name; raise ValueError if that is impossible."""
    if tool is None:
        raise ValueError("tool is None")
    name = tool.describe().name
    if not name:
        raise ValueError("tool name is empty")
    with _lock:
        if name in _tools:
            raise ValueError(f'tool "{name}" already registered')
        _tools[name] = tool


def resolve_tool(name: str) -> Optional[Tool]:
    """Return the tool registered under a name, or ``None``."""
    with _lock:
        return _tools.get(name)


def iter_tools() -> Iterator[tuple[str, Tool]]:
    """Yield ``(name, tool)`` for every registered tool."""
    with _lock:
        snapshot = list(_tools.items())
    yield from snapshot


def safe_invoke(
    tool: Optional[Tool],
    args: Any,
    allowed: Optional[Mapping[str, bool]] = None,
    validate: ValidateFunc = json_schema_validator,
) -> dict[str, Any]:
    """Check permissions, validate the input, invoke the tool and validate its output.

    Raises a policy error for a missing permission and validation errors for a
    missing tool or for input or output that does not match the schemas.
    """
    if tool is None:
        raise errmodel.validation("bad_tool", "tool is missing")
    granted = allowed or {}
    descriptor = tool.describe()
    for permission in descriptor.permissions:
        if not granted.get(permission.name):
            raise errmodel.policy(
                "forbidden",
                "permission denied for tool",
                {"permission": permission.name, "tool": descriptor.name},
            )
    try:
        validate(descriptor.input_schema, args)
    except Exception as exc:
        raise errmodel.validation(
            "invalid_input",
            "tool input validation failed",
            {"tool": descriptor.name, "error": str(exc)},
        ) from exc
    output = tool.invoke(args)
    try:
        validate(descriptor.output_schema, output)
    except Exception as exc:
        raise errmodel.validation(
            "invalid_output",
            "tool output validation failed",
            {"tool": descriptor.name, "error": str(exc)},
        ) from exc
    return output


@dataclass
class ToolEffectHandler(EffectHandler):
    """Runs intents named ``tool`` whose args are ``{"name": str, "args": dict}``."""

    allowed_permissions: dict[str, bool] = field(default_factory=dict)
    validate: ValidateFunc = json_schema_validator

    def can_handle(self, intent: Intent) -> bool:
        return intent.name == "tool"

    def handle(self, state: State, intent: Intent) -> list[Event]:
        if "name" not in intent.args:
            raise errmodel.validation("missing_fields", "name required", {"fields": ["name"]})
        raw_name = intent.args["name"]
        name = raw_name if isinstance(raw_name, str) else ""
        tool = resolve_tool(name)
        if tool is None:
            raise errmodel.validation("not_found", "tool not found", {"tool": name})
        raw_args = intent.args.get("args")
        tool_args = raw_args if isinstance(raw_args, dict) else None
        output = safe_invoke(tool, tool_args, self.allowed_permissions, self.validate)
        return [Event(type="tool_result", payload={"tool": name, "output": output})]