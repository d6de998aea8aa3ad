"""Deterministic context assembly with pins, deduplication and a token budget."""

from __future__ import annotations

from dataclasses import dataclass, field
from itertools import chain
from typing import Callable, Iterable, Optional

TokenEstimator = Callable[[str], int]
"""Estimates the number of tokens in a piece of text."""

_DEFAULT_MAX_TOKENS = 1_000_000_000


@dataclass(frozen=True)
class Item:
    """A retrievable chunk of context identified by ``(source, chunk_id)``."""

    source: str
    chunk_id: str
    text: str = ""


@dataclass(frozen=True)
class Pinned:
    """Identifies an item to be considered before all others."""

    source: str
    chunk_id: str


@dataclass(frozen=True)
class LogItem:
    """Citation metadata for an included item."""

    source: str
    chunk_id: str
    token_count: int


@dataclass(frozen=True)
class AssemblyLog:
    """Summary of an assembly: tokens used, items dropped for budget, included items."""

    total_tokens: int = 0
    included_tokens: int = 0
    dropped_count: int = 0
    items: list[LogItem] = field(default_factory=list)


def _character_count(text: str) -> int:
    return len(text)


def _order(item: Item) -> tuple[str, str]:
    return (item.source, item.chunk_id)


class Assembler:
    """Selects context items deterministically without exceeding a token budget."""

    def __init__(
        self,
        token_estimator: Optional[TokenEstimator] = None,
        max_tokens: int = 0,
    ) -> None:
        self._estimate = token_estimator or _character_count
        self._max_tokens = max_tokens if max_tokens > 0 else _DEFAULT_MAX_TOKENS

    def assemble(
        self, items: Iterable[Item], pins: Optional[Iterable[Pinned]] = None
    ) -> tuple[list[Item], AssemblyLog]:
        """Deduplicate, place pinned items first, order by source then chunk, and fit the budget."""
        unique: dict[tuple[str, str], Item] = {}
        for item in items:
            unique.setdefault(_order(item), item)
        pinned_keys = {(pin.source, pin.chunk_id) for pin in pins or ()}

        pinned = sorted((it for key, it in unique.items() if key in pinned_keys), key=_order)
        others = sorted((it for key, it in unique.items() if key not in pinned_keys), key=_order)

        budget = self._max_tokens
        included: list[Item] = []
        logs: list[LogItem] = []
        dropped = 0
        used = 0
        for item in chain(pinned, others):
            cost = self._estimate(item.text)
            if cost <= budget:
                budget -= cost
                used += cost
                included.append(item)
                logs.append(LogItem(item.source, item.chunk_id, cost))
            else:
                dropped += 1
        return included, AssemblyLog(used, used, dropped, logs)