"""Chat/text generation providers: contract and process-wide registry."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence

Factory = Callable[[Optional[Mapping[str, Any]]], "LLM"]
"""Builds a model client from a provider-specific configuration mapping."""

_lock = threading.RLock()
_factories: dict[str, Factory] = {}


@dataclass(frozen=True)
class Message:
    """A chat message with a role and content."""

    role: str
    content: str


@dataclass(frozen=True)
class GenerateResult:
    """Generated text and token usage, when the provider reports it."""

    text: str = ""
    prompt_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    model: str = ""


class LLM(ABC):
    """Minimal chat/text generation interface."""

    name: str = ""

    @abstractmethod
    def generate(
        self, messages: Sequence[Message], opts: Optional[Mapping[str, Any]] = None
    ) -> GenerateResult:
        """Create a completion from a list of messages."""


def register(name: str, factory: Optional[Factory]) -> None:
    """Register a factory under a provider name; raise ValueError on conflict."""
    if not name:
        raise ValueError("llm: empty provider name")
    if factory is None:
        raise ValueError(f'llm: nil factory for "{name}"')
    with _lock:
        if name in _factories:
            raise ValueError(f'llm: provider "{name}" already registered')
        _factories[name] = factory


def resolve(name: str) -> Optional[Factory]:
    """Return the factory registered under a name, or ``None``."""
    with _lock:
        return _factories.get(name)


def providers() -> dict[str, Factory]:
    """Return a copy of all registered factories by provider name."""
    with _lock:
        return dict(_factories)