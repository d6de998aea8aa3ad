"""Vector store contract, process-wide registry and an in-memory implementation."""

from __future__ import annotations

import math
import struct
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

Vector = list[float]
"""A single dense embedding vector."""

Factory = Callable[[Optional[Mapping[str, Any]]], "VectorStore"]
"""Builds a vector store from a provider-specific configuration mapping."""

_DEFAULT_NAMESPACE = "default"

_lock = threading.RLock()
_factories: dict[str, Factory] = {}


@dataclass(frozen=True)
class Item:
    """A vectorised chunk with metadata for filtering and citation."""

    id: str
    namespace: str = ""
    vector: Vector = field(default_factory=list)
    metadata: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class Match:
    """A search result; a higher score means more similar."""

    item: Item
    score: float


@dataclass(frozen=True)
class Filter:
    """Restricts query results to a namespace and exact metadata values."""

    namespace: str = ""
    equals: Optional[dict[str, Any]] = None


class VectorStore(ABC):
    """Upsert and similarity query operations."""

    @abstractmethod
    def upsert(self, items: Iterable[Item]) -> None:
        """Insert or replace items by id within their namespace."""

    @abstractmethod
    def query(self, query: Sequence[float], k: int, filter: Optional[Filter] = None) -> list[Match]:
        """Return the top-k items most similar to the query vector."""


def register(name: str, factory: Optional[Factory]) -> None:
    """Register a factory under a provider name; raise ValueError on conflict."""
    if not name:
        raise ValueError("vectorstore: empty provider name")
    if factory is None:
        raise ValueError(f'vectorstore: nil factory for "{name}"')
    with _lock:
        if name in _factories:
            raise ValueError(f'vectorstore: provider "{name}" already registered')
        _factories[name] = factory


def resolve(name: str) -> Optional[Factory]:
    """Return the factory registered under a name, or ``None``."""
    with _lock:
        return _factories.get(name)


def providers() -> dict[str, Factory]:
    """Return a copy of all registered factories by provider name."""
    with _lock:
        return dict(_factories)


def _float32(value: float) -> float:
    return struct.unpack("<f", struct.pack("<f", value))[0]


def _dot(a: Sequence[float], b: Sequence[float]) -> float:
    return sum(float(x) * float(y) for x, y in zip(a, b))


def _cosine(query: Sequence[float], vector: Sequence[float], query_norm: float) -> float:
    denominator = query_norm * math.sqrt(_dot(vector, vector))
    if denominator == 0:
        return 0.0
    return _float32(_dot(query, vector) / denominator)


def _metadata_matches(have: Optional[Mapping[str, Any]], want: Optional[Mapping[str, Any]]) -> bool:
    if not want:
        return True
    if have is None:
        return False
    return all(key in have and have[key] == value for key, value in want.items())


class MemoryVectorStore(VectorStore):
    """In-memory vector store using cosine similarity, for tests and examples."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._by_namespace: dict[str, dict[str, Item]] = {}

    def upsert(self, items: Iterable[Item]) -> None:
        """Insert or replace items; raise ValueError for an empty id or vector."""
        with self._lock:
            for item in items:
                if not item.id:
                    raise ValueError("memory vectorstore: empty id")
                if not item.vector:
                    raise ValueError("memory vectorstore: empty vector")
                namespace = item.namespace or _DEFAULT_NAMESPACE
                self._by_namespace.setdefault(namespace, {})[item.id] = item

    def query(self, query: Sequence[float], k: int, filter: Optional[Filter] = None) -> list[Match]:
        """Rank items of one namespace by cosine similarity; ``k`` <= 0 returns all.

        Items of a different dimension are skipped; a zero query vector raises ValueError.
        """
        criteria = filter or Filter()
        namespace = criteria.namespace or _DEFAULT_NAMESPACE
        with self._lock:
            bucket = self._by_namespace.get(namespace)
            candidates = list(bucket.values()) if bucket is not None else None
        if candidates is None:
            return []

        squared = _dot(query, query)
        if squared == 0:
            raise ValueError("memory vectorstore: zero-norm query vector")
        query_norm = math.sqrt(squared)

        matches = [
            Match(item, _cosine(query, item.vector, query_norm))
            for item in candidates
            if _metadata_matches(item.metadata, criteria.equals) and len(item.vector) == len(query)
        ]
        matches.sort(key=lambda m: m.score, reverse=True)
        if k > 0:
            matches = matches[:k]
        return matches