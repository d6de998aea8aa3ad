"""Core contracts for event-sourced agent execution."""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class Event:
    """An immutable record of something that happened during a run."""

    id: str = ""
    type: str = ""
    timestamp: Optional[datetime] = None
    payload: Any = None


@runtime_checkable
class State(Protocol):
    """State of one run; changed only by reducers."""

    run_id: str

    def clone(self) -> State:
        """Return a deep copy of the state."""
        return copy.deepcopy(self)


@dataclass(frozen=True)
class Intent:
    """A side effect requested by a reducer, executed by an effect handler."""

    name: str
    args: dict[str, Any] = field(default_factory=dict)
    idempotency_key: str = ""


class Reducer(ABC):
    """Pure, deterministic transformation of state by an event."""

    @abstractmethod
    def reduce(self, current: State, event: Event) -> tuple[State, list[Intent]]:
        """Return the next state and the intents to execute; raise on failure."""


class EffectHandler(ABC):
    """Executes intents and reports their results as new events."""

    @abstractmethod
    def can_handle(self, intent: Intent) -> bool:
        """Tell whether this handler executes the given intent."""

    @abstractmethod
    def handle(self, state: State, intent: Intent) -> list[Event]:
        """Execute the intent and return the events it produced; raise on failure."""