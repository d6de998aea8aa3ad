import pytest

from orch import llm
from orch.llm import LLM, GenerateResult, Message


class EchoLLM(LLM):
    name = "echo"

    def __init__(self, model):
        self.model = model

    def generate(self, messages, opts=None):
        model = (opts or {}).get("model") or self.model
        return GenerateResult(text=messages[-1].content, model=model)


def test_registry_round_trip_and_generate():
    llm.register("test-echo", lambda cfg: EchoLLM((cfg or {}).get("model", "m1")))
    factory = llm.resolve("test-echo")
    assert factory is not None
    client = factory({"model": "m2"})
    result = client.generate([Message("system", "be brief"), Message("user", "pong")])
    assert result.text == "pong"
    assert result.model == "m2"
    assert "test-echo" in llm.providers()


def test_generate_honours_model_option():
    client = EchoLLM("base")
    result = client.generate([Message("user", "hi")], {"model": "other"})
    assert result.model == "other"
    assert result.prompt_tokens == 0 and result.total_tokens == 0


def test_resolve_unknown_returns_none():
    assert llm.resolve("test-never-registered") is None


def test_register_errors():
    llm.register("test-llm-dup", lambda cfg: EchoLLM("m"))
    with pytest.raises(ValueError, match="already registered"):
        llm.register("test-llm-dup", lambda cfg: EchoLLM("m"))
    with pytest.raises(ValueError, match="empty provider name"):
        llm.register("", lambda cfg: EchoLLM("m"))
    with pytest.raises(ValueError, match="nil factory"):
        llm.register("test-llm-none", None)


def test_abstract_llm_cannot_be_instantiated():
    with pytest.raises(TypeError):
        LLM()