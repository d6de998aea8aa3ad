"""Records and abstract interfaces for durable event logs and snapshots."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class EventRecord:
    """Persisted form of an event; ``payload`` holds raw JSON bytes."""

    event_id: str
    run_id: str
    seq: int = 0
    type: str = ""
    payload: Optional[bytes] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class SnapshotRecord:
    """Materialised state of a run up to a sequence number; ``state`` is raw JSON bytes."""

    snapshot_id: str
    run_id: str
    upto_seq: int = 0
    state: Optional[bytes] = None
    created_at: Optional[datetime] = None


class RecordNotFound(LookupError):
    """Raised when a requested event or snapshot does not exist."""


class EventStore(ABC):
    """Append-only event log, ordered per run by sequence number."""

    @abstractmethod
    def append_event(self, record: EventRecord) -> EventRecord:
        """Append an event and return it with its assigned sequence."""

    @abstractmethod
    def list_events(self, run_id: str, after_seq: int = 0, limit: int = 0) -> list[EventRecord]:
        """List events of a run after a sequence, ascending; ``limit`` 0 means no limit."""

    @abstractmethod
    def last_seq(self, run_id: str) -> int:
        """Return the highest sequence of a run, or 0 if it has no events."""

    @abstractmethod
    def get_event_by_id(self, event_id: str) -> EventRecord:
        """Return the event with this id; raise RecordNotFound if absent."""


class SnapshotStore(ABC):
    """Storage for state snapshots."""

    @abstractmethod
    def save_snapshot(self, snapshot: SnapshotRecord) -> SnapshotRecord:
        """Persist a snapshot and return the stored record."""

    @abstractmethod
    def load_latest_snapshot(self, run_id: str) -> SnapshotRecord:
        """Return the snapshot with the highest sequence; raise RecordNotFound if none."""


class Store(EventStore, SnapshotStore, ABC):
    """Combined event and snapshot store."""