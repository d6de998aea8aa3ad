"""Offline prompt evaluation against fixtures, and replay of captured runs."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Union

from orch.contracts import EffectHandler, Event, Reducer, State
from orch.runtime import Runner, SnapshotCodec, StateFactory
from orch.store import Store

_ACTION = re.compile(r"\{\{(-[ \t\r\n])?(.*?)([ \t\r\n]-)?\}\}", re.S)
_FIELD_CHAIN = re.compile(r"^(?:\.[A-Za-z_][A-Za-z0-9_]*)+$")
_TEMPLATE_SPACE = " \t\r\n"
_REPLAY_SNAPSHOT_INTERVAL = 2


class TemplateError(ValueError):
    """Raised when a prompt template cannot be parsed or rendered."""


@dataclass(frozen=True)
class Expectation:
    """Substrings a rendered prompt must, and must not, contain."""

    contains: tuple[str, ...] = ()
    not_contains: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Expectation:
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ValueError("expect must be an object")
        return cls(
            contains=tuple(_string_list(data.get("contains"), "contains")),
            not_contains=tuple(_string_list(data.get("not_contains"), "not_contains")),
        )


@dataclass(frozen=True)
class Fixture:
    """One prompt evaluation case."""

    name: str = ""
    prompt: str = ""
    vars: Optional[dict[str, Any]] = None
    expect: Expectation = field(default_factory=Expectation)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Fixture:
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ValueError("fixture must be a JSON object")
        variables = data.get("vars")
        if variables is not None and not isinstance(variables, dict):
            raise ValueError("vars must be an object")
        return cls(
            name=_string(data.get("name"), "name"),
            prompt=_string(data.get("prompt"), "prompt"),
            vars=variables,
            expect=Expectation.from_dict(data.get("expect")),
        )


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of evaluating a fixture directory; ``score`` lies in [0, 1]."""

    score: float
    total: int
    passed: int
    details: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Capture:
    """A captured run: its id and the sequence of events it received."""

    run_id: str
    events: list[Event] = field(default_factory=list)


def _string(value: Any, what: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{what} must be a string")
    return value


def _string_list(value: Any, what: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{what} must be a list of strings")
    return value


def _format_value(value: Any) -> str:
    if value is None:
        return "<no value>"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, float):
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    if isinstance(value, list):
        return "[" + " ".join(_format_value(v) for v in value) + "]"
    if isinstance(value, Mapping):
        parts = (f"{k}:{_format_value(value[k])}" for k in sorted(value))
        return "map[" + " ".join(parts) + "]"
    return str(value)


def _evaluate(expression: str, variables: Mapping[str, Any]) -> str:
    if expression.startswith("/*") and expression.endswith("*/"):
        return ""
    if not expression:
        raise TemplateError("missing value for command")
    if expression == ".":
        return _format_value(variables)
    if not _FIELD_CHAIN.match(expression):
        raise TemplateError(f"unsupported template action: {expression}")
    current: Any = variables
    for key in expression[1:].split("."):
        if isinstance(current, Mapping):
            if key not in current:
                raise TemplateError(f'map has no entry for key "{key}"')
            current = current[key]
        elif current is None:
            raise TemplateError(f"nil value evaluating field {key}")
        else:
            raise TemplateError(f"can't evaluate field {key} in {type(current).__name__}")
    return _format_value(current)


def render_template(template: str, variables: Optional[Mapping[str, Any]]) -> str:
    """Render ``{{.field}}`` actions with the given variables; a missing key is an error."""
    data: Mapping[str, Any] = variables if variables is not None else {}
    pieces: list[str] = []
    position = 0
    trim_next = False
    for match in _ACTION.finditer(template):
        text = template[position : match.start()]
        if trim_next:
            text = text.lstrip(_TEMPLATE_SPACE)
        if match.group(1):
            text = text.rstrip(_TEMPLATE_SPACE)
        pieces.append(text)
        pieces.append(_evaluate(match.group(2).strip(_TEMPLATE_SPACE), data))
        trim_next = bool(match.group(3))
        position = match.end()
    tail = template[position:]
    if "{{" in tail:
        raise TemplateError("unclosed action")
    if trim_next:
        tail = tail.lstrip(_TEMPLATE_SPACE)
    pieces.append(tail)
    return "".join(pieces)


def _load_fixtures(directory: Path) -> list[Fixture]:
    fixtures = []
    for entry in sorted(directory.iterdir(), key=lambda p: p.name):
        if entry.is_dir() or not entry.name.endswith(".json"):
            continue
        fixtures.append(Fixture.from_dict(json.loads(entry.read_bytes())))
    return fixtures


def evaluate_prompt_fixtures(directory: Union[str, Path]) -> EvaluationResult:
    """Render every ``*.json`` fixture in a directory and check its expectations.

    Raises FileNotFoundError for a missing directory and ValueError for bad fixture JSON.
    """
    fixtures = _load_fixtures(Path(directory))
    if not fixtures:
        return EvaluationResult(1.0, 0, 0, [])
    details: list[str] = []
    passed = 0
    for fixture in fixtures:
        try:
            output = render_template(fixture.prompt, fixture.vars)
        except TemplateError as exc:
            details.append(f"{fixture.name}: render error: {exc}")
            continue
        ok = True
        for needle in fixture.expect.contains:
            if needle not in output:
                ok = False
                details.append(f"{fixture.name}: missing contains: {needle}")
        for needle in fixture.expect.not_contains:
            if needle in output:
                ok = False
                details.append(f"{fixture.name}: unexpected contains: {needle}")
        if ok:
            passed += 1
    return EvaluationResult(passed / len(fixtures), len(fixtures), passed, details)


def replay_run(
    store: Store,
    reducer: Reducer,
    handlers: Iterable[EffectHandler],
    new_state: StateFactory,
    capture: Capture,
    codec: Optional[SnapshotCodec],
) -> Optional[State]:
    """Replay a captured run into a fresh runner and return the final state."""
    runner = Runner(
        store,
        reducer,
        handlers,
        new_state,
        snapshot_codec=codec,
        snapshot_interval=_REPLAY_SNAPSHOT_INTERVAL,
    )
    final: Optional[State] = None
    for event in capture.events:
        final = runner.handle_event(capture.run_id, event)
    return final