import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone

import pytest

from orch.contracts import EffectHandler, Event, Intent, Reducer, State


@dataclass
class ListState(State):
    run_id: str
    items: list = field(default_factory=list)


class AppendReducer(Reducer):
    def reduce(self, current, event):
        nxt = current.clone()
        nxt.items.append(event.payload)
        return nxt, [Intent("log", {"value": event.payload})]


def test_clone_is_deep():
    original = ListState("r1", [[1], [2]])
    copied = State.clone(original)
    copied.items[0].append(99)
    copied.items.append([3])
    assert original.items == [[1], [2]]
    assert copied.items == [[1, 99], [2], [3]]
    assert copied.run_id == original.run_id


def test_event_is_immutable():
    ev = Event(id="e1", type="trigger", payload={"k": "v"})
    with pytest.raises(dataclasses.FrozenInstanceError):
        ev.id = "e2"
    assert ev.id == "e1"
    assert ev.payload == {"k": "v"}


def test_event_replace_keeps_other_fields():
    ts = datetime.now(timezone.utc)
    ev = Event(type="trigger", timestamp=ts, payload={"k": "v"})
    filled = dataclasses.replace(ev, id="e9")
    assert filled == Event(id="e9", type="trigger", timestamp=ts, payload={"k": "v"})
    assert ev.id == ""


def test_intent_args_are_not_shared():
    a = Intent("tool")
    b = Intent("tool")
    a.args["x"] = 1
    assert b.args == {}
    assert a.idempotency_key == ""


@pytest.mark.parametrize("cls", [Reducer, EffectHandler])
def test_abstract_contracts_cannot_be_instantiated(cls):
    with pytest.raises(TypeError):
        cls()


def test_reducer_leaves_input_state_untouched():
    start = ListState("r1")
    nxt, intents = AppendReducer().reduce(start, Event(type="add", payload="a"))
    assert start.items == []
    assert nxt.items == ["a"]
    assert intents == [Intent("log", {"value": "a"})]