"""Tool contracts and JSON Schema validation of tool inputs and outputs."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from jsonschema import Draft202012Validator
from jsonschema.validators import validator_for

SchemaSource = Union[bytes, str]

ValidateFunc = Callable[[SchemaSource, Any], None]
"""Validates data against a JSON Schema document, raising on failure."""


@dataclass(frozen=True)
class ToolPermission:
    """A capability a tool requires, such as ``network:outbound``."""

    name: str
    description: str = ""


@dataclass(frozen=True)
class ToolDescriptor:
    """Static interface of a tool: JSON Schemas (draft 2020-12) and permissions."""

    name: str = ""
    description: str = ""
    input_schema: SchemaSource = b""
    output_schema: SchemaSource = b""
    permissions: tuple[ToolPermission, ...] = ()


class Tool(ABC):
    """A callable unit with schema-validated inputs and outputs."""

    @abstractmethod
    def describe(self) -> ToolDescriptor:
        """Return the tool's public descriptor."""

    @abstractmethod
    def invoke(self, args: dict[str, Any]) -> dict[str, Any]:
        """Run the tool; args conform to the input schema, the result to the output schema."""


def describe_tool(tool: Optional[Tool]) -> ToolDescriptor:
    """Return the descriptor of a tool, or an empty one for ``None``."""
    if tool is None:
        return ToolDescriptor()
    return tool.describe()


def _as_json_value(data: Any) -> Any:
    try:
        return json.loads(json.dumps(data))
    except (TypeError, ValueError):
        return None


def json_schema_validator(schema: SchemaSource, data: Any) -> None:
    """Validate data against a JSON Schema; an empty schema accepts everything.

    Raises ``ValueError`` for malformed schema JSON, ``jsonschema.SchemaError``
    for an invalid schema and ``jsonschema.ValidationError`` for invalid data.
    """
    if not schema:
        return
    document = json.loads(schema)
    validator_cls = validator_for(document, default=Draft202012Validator)
    validator_cls.check_schema(document)
    validator_cls(document).validate(_as_json_value(data))