"""Embedding providers: contract, process-wide registry and a deterministic fake."""

from __future__ import annotations

import hashlib
import struct
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping, Optional, Sequence

Vector = list[float]
"""A single embedding vector."""

Factory = Callable[[Optional[Mapping[str, Any]]], "Embedder"]
"""Builds an embedder from a provider-specific configuration mapping."""

_lock = threading.RLock()
_factories: dict[str, Factory] = {}


class Embedder(ABC):
    """Produces one embedding vector per input text."""

    name: str = ""

    @abstractmethod
    def embed(
        self, inputs: Sequence[str], opts: Optional[Mapping[str, Any]] = None
    ) -> list[Vector]:
        """Return one vector per input, in order."""


def register(name: str, factory: Optional[Factory]) -> None:
    """Register a factory under a provider name; raise ValueError on conflict."""
    if not name:
        raise ValueError("embedding: empty provider name")
    if factory is None:
        raise ValueError(f'embedding: nil factory for "{name}"')
    with _lock:
        if name in _factories:
            raise ValueError(f'embedding: provider "{name}" already registered')
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


class FakeEmbedder(Embedder):
    """Deterministic hash-based embedder for tests; vectors derive from SHA-256."""

    name = "fake"

    def __init__(self, dim: int = 4) -> None:
        self.dim = max(dim, 4)

    def embed(
        self, inputs: Sequence[str], opts: Optional[Mapping[str, Any]] = None
    ) -> list[Vector]:
        seed = 0
        for key in sorted(opts or {}):
            digest = hashlib.sha256(key.encode("utf-8")).digest()
            seed ^= int.from_bytes(digest[:8], "little")
        low_seed = seed & 0xFFFFFFFF

        vectors = []
        for text in inputs:
            digest = hashlib.sha256(text.encode("utf-8")).digest()
            vector = []
            for j in range(self.dim):
                offset = (j * 4) % len(digest)
                word = int.from_bytes(digest[offset : offset + 4], "little") ^ low_seed
                scaled = _float32(float(word & 0x7FFFFFFF)) / float(1 << 31)
                vector.append(_float32(scaled - 0.5))
            vectors.append(vector)
        return vectors