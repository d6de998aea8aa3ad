import jsonschema
import pytest

from orch.tool import (
    Tool,
    ToolDescriptor,
    ToolPermission,
    describe_tool,
    json_schema_validator,
)

ECHO_IN = b'{"type":"object","properties":{"msg":{"type":"string"}},"required":["msg"],"additionalProperties":false}'
ECHO_OUT = b'{"type":"object","properties":{"echo":{"type":"string"}},"required":["echo"],"additionalProperties":false}'


class EchoTool(Tool):
    def describe(self):
        return ToolDescriptor(
            name="echo",
            description="echoes a message",
            input_schema=ECHO_IN,
            output_schema=ECHO_OUT,
            permissions=(ToolPermission("cpu", "local compute"),),
        )

    def invoke(self, args):
        return {"echo": str(args.get("msg", ""))}


def test_describe_tool():
    d = describe_tool(EchoTool())
    assert d.name == "echo"
    assert len(d.input_schema) > 0 and len(d.output_schema) > 0
    assert len(d.permissions) == 1
    assert d.permissions[0].name == "cpu"


def test_describe_tool_none_gives_empty_descriptor():
    assert describe_tool(None) == ToolDescriptor()


def test_tool_is_abstract():
    with pytest.raises(TypeError):
        Tool()


def test_validator_accepts_valid_input():
    assert json_schema_validator(ECHO_IN, {"msg": "hi"}) is None


@pytest.mark.parametrize("data", [{"msg": 1}, {}, {"msg": "hi", "extra": True}, "text"])
def test_validator_rejects_invalid_input(data):
    with pytest.raises(jsonschema.ValidationError):
        json_schema_validator(ECHO_IN, data)


@pytest.mark.parametrize("schema", [b"", ""])
def test_empty_schema_accepts_anything(schema):
    assert json_schema_validator(schema, object()) is None


def test_validator_accepts_str_schema():
    assert json_schema_validator(ECHO_OUT.decode(), {"echo": "x"}) is None
    with pytest.raises(jsonschema.ValidationError):
        json_schema_validator(ECHO_OUT.decode(), {"echo": 3})


def test_malformed_schema_json_raises():
    with pytest.raises(ValueError):
        json_schema_validator(b"{not json", {})


def test_invalid_schema_raises_schema_error():
    with pytest.raises(jsonschema.SchemaError):
        json_schema_validator(b'{"type": 12}', {})


def test_data_is_normalised_through_json():
    schema = b'{"type":"array","items":{"type":"integer"}}'
    assert json_schema_validator(schema, (1, 2, 3)) is None


def test_format_is_not_asserted():
    schema = b'{"type":"object","properties":{"url":{"type":"string","format":"uri"}}}'
    assert json_schema_validator(schema, {"url": "not a uri"}) is None