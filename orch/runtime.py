"""Runner that drives reducers and effect handlers over a durable event log."""

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from orch import errmodel
from orch.contracts import EffectHandler, Event, Intent, Reducer, State
from orch.store import EventRecord, RecordNotFound, SnapshotRecord, Store

StateFactory = Callable[[str], State]
"""Creates the initial state of a run from its id."""


class SnapshotCodec(ABC):
    """Encodes and decodes state for durable snapshots."""

    @abstractmethod
    def encode(self, state: State) -> bytes:
        """Serialise a state to JSON bytes."""

    @abstractmethod
    def decode(self, run_id: str, data: bytes) -> State:
        """Rebuild a state from the bytes produced by ``encode``."""


def _event_to_record(run_id: str, event: Event) -> EventRecord:
    payload = json.dumps(event.payload).encode("utf-8") if event.payload is not None else None
    return EventRecord(
        event_id=event.id,
        run_id=run_id,
        type=event.type,
        payload=payload,
        created_at=event.timestamp,
    )


def _record_to_event(record: EventRecord) -> Event:
    payload = json.loads(record.payload) if record.payload else None
    return Event(
        id=record.event_id,
        type=record.type,
        timestamp=record.created_at,
        payload=payload,
    )


def _marker_event_id(run_id: str, key: str) -> str:
    return f"intent-{run_id}-{key}"


def _claim_event_id(run_id: str, key: str) -> str:
    return f"intent-claim-{run_id}-{key}"


class Runner:
    """Coordinates reducer execution and effect handling backed by a durable store.

    Snapshotting is enabled when a codec is given and the interval is positive;
    a snapshot is then saved whenever the run's last sequence is a multiple of it.
    """

    def __init__(
        self,
        store: Store,
        reducer: Reducer,
        handlers: Iterable[EffectHandler],
        new_state: StateFactory,
        snapshot_codec: Optional[SnapshotCodec] = None,
        snapshot_interval: int = 0,
    ) -> None:
        self._store = store
        self._reducer = reducer
        self._handlers = tuple(handlers)
        self._new_state = new_state
        if snapshot_codec is not None and snapshot_interval > 0:
            self._codec: Optional[SnapshotCodec] = snapshot_codec
            self._interval = snapshot_interval
        else:
            self._codec = None
            self._interval = 0

    def handle_event(self, run_id: str, incoming: Event) -> State:
        """Reduce an incoming event, run the resulting intents and return the final state.

        An event whose id is already recorded is not processed again.
        """
        if not run_id:
            raise errmodel.validation("missing_run", "run_id is empty")
        if not incoming.id:
            incoming = replace(incoming, id=f"e-{run_id}-{time.time_ns()}")

        try:
            current, _ = self.replay_state(run_id)
        except Exception as exc:
            raise errmodel.system(
                "store_error", "failed to replay state", {"phase": "replay"}, exc
            ) from exc

        try:
            self._store.get_event_by_id(incoming.id)
        except RecordNotFound:
            pass
        except Exception as exc:
            raise errmodel.system(
                "store_error", "failed to check existing event", {"event_id": incoming.id}, exc
            ) from exc
        else:
            return current

        current, intents = self._reducer.reduce(current, incoming)

        try:
            self._store.append_event(_event_to_record(run_id, incoming))
        except Exception as exc:
            raise errmodel.system(
                "store_error", "failed to append incoming event", {"event_type": incoming.type}, exc
            ) from exc

        for intent in intents or ():
            current = self._run_intent(run_id, current, intent)

        if self._codec is not None:
            self._maybe_snapshot(run_id, current)
        return current

    def replay_state(self, run_id: str) -> tuple[State, int]:
        """Rebuild a run's state from its latest snapshot and later events.

        Returns the state and the sequence of the last event applied.
        """
        base = self._new_state(run_id)
        upto = 0
        try:
            snapshot = self._store.load_latest_snapshot(run_id)
        except Exception:
            # No usable snapshot: replay from the start of the log.
            snapshot = None
        if snapshot is not None and snapshot.state:
            if self._codec is not None:
                try:
                    decoded = self._codec.decode(run_id, snapshot.state)
                except Exception:
                    decoded = None
                if decoded is not None:
                    base = decoded
            upto = snapshot.upto_seq

        current = base
        last = upto
        for record in self._store.list_events(run_id, upto, 0):
            current, _ = self._reducer.reduce(current, _record_to_event(record))
            last = record.seq
        return current, last

    def _find_handler(self, intent: Intent) -> Optional[EffectHandler]:
        return next((h for h in self._handlers if h.can_handle(intent)), None)

    def _event_exists(self, event_id: str) -> bool:
        try:
            self._store.get_event_by_id(event_id)
        except RecordNotFound:
            return False
        return True

    def _claim(self, run_id: str, key: str) -> bool:
        claim_id = _claim_event_id(run_id, key)
        if self._event_exists(claim_id):
            return False
        try:
            self._store.append_event(
                EventRecord(
                    event_id=claim_id,
                    run_id=run_id,
                    type="intent_claimed",
                    created_at=datetime.now(timezone.utc),
                )
            )
        except Exception:
            if self._event_exists(claim_id):
                return False
            raise
        return True

    def _run_intent(self, run_id: str, current: State, intent: Intent) -> State:
        handler = self._find_handler(intent)
        if handler is None:
            return current
        if intent.idempotency_key and not self._claim(run_id, intent.idempotency_key):
            return current

        try:
            events = handler.handle(current, intent)
        except Exception as exc:
            raise errmodel.system(
                "effect_error", "effect handler error", {"intent": intent.name}, exc
            ) from exc

        for event in events or ():
            try:
                self._store.append_event(_event_to_record(run_id, event))
            except Exception as exc:
                raise errmodel.system(
                    "store_error", "failed to append effect event", {"event_type": event.type}, exc
                ) from exc
            try:
                current, _ = self._reducer.reduce(current, event)
            except Exception as exc:
                raise errmodel.system(
                    "reducer_error", "failed to apply reducer", {"event_type": event.type}, exc
                ) from exc

        if intent.idempotency_key:
            marker = Event(
                id=_marker_event_id(run_id, intent.idempotency_key),
                type="intent_processed",
                timestamp=datetime.now(timezone.utc),
                payload={"key": intent.idempotency_key, "name": intent.name},
            )
            try:
                self._store.append_event(_event_to_record(run_id, marker))
            except Exception as exc:
                raise errmodel.system(
                    "store_error", "failed to append idempotency marker", {"intent": intent.name}, exc
                ) from exc
        return current

    def _maybe_snapshot(self, run_id: str, state: State) -> None:
        try:
            seq = self._store.last_seq(run_id)
        except Exception as exc:
            raise errmodel.system(
                "store_error", "failed to get last sequence", {"run_id": run_id}, exc
            ) from exc
        if seq > 0 and seq % self._interval == 0:
            try:
                self._save_snapshot(run_id, seq, state)
            except Exception as exc:
                raise errmodel.system(
                    "snapshot_error", "failed to save snapshot", {"run_id": run_id, "seq": seq}, exc
                ) from exc

    def _save_snapshot(self, run_id: str, upto: int, state: State) -> None:
        if self._codec is None:
            return
        data = self._codec.encode(state)
        self._store.save_snapshot(
            SnapshotRecord(
                snapshot_id=f"snap-{run_id}-{upto}",
                run_id=run_id,
                upto_seq=upto,
                state=data,
                created_at=datetime.now(timezone.utc),
            )
        )