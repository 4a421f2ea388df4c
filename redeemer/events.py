"""
events.py - Observable Migration Events

Events are plain immutable data describing a committed transition. They are
appended as the last step of a transition, inside its atomic unit: if the
transition fails afterwards (a subscriber raising included) its events are
withdrawn with everything else. Events are never replayed or retried.

Core concepts:
1. Event payloads: Initialized, Redeemed, Paused, WindowUpdated, Finalized
   (plus WindowInverted, a warning emitted alongside WindowUpdated)
2. EventRecord: payload + sequence number, migration key and timestamp
3. EventLog: append-only store with synchronous subscribers
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass, asdict
from typing import Any, Callable, ClassVar, Dict, Iterator, List, Optional, Union
import threading


# ============================================================================
# EVENT PAYLOADS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Initialized:
    """Bootstrap committed; carries the final persisted parameters."""
    kind: ClassVar[str] = "Initialized"
    admin: str
    old_asset: str
    new_asset: str
    total_cap: int
    migration_cap: int
    start_ts: int
    end_ts: int


@dataclass(frozen=True, slots=True)
class Redeemed:
    """A redemption burned old units and minted new units to `user`."""
    kind: ClassVar[str] = "Redeemed"
    user: str
    burned_old: int
    minted_new: int


@dataclass(frozen=True, slots=True)
class Paused:
    kind: ClassVar[str] = "Paused"
    paused: bool


@dataclass(frozen=True, slots=True)
class WindowUpdated:
    kind: ClassVar[str] = "WindowUpdated"
    start_ts: int
    end_ts: int


@dataclass(frozen=True, slots=True)
class WindowInverted:
    """Warning: start_ts > end_ts, redemption can never open under this window."""
    kind: ClassVar[str] = "WindowInverted"
    start_ts: int
    end_ts: int


@dataclass(frozen=True, slots=True)
class Finalized:
    kind: ClassVar[str] = "Finalized"


MigrationEvent = Union[Initialized, Redeemed, Paused, WindowUpdated, WindowInverted, Finalized]


# ============================================================================
# EVENT LOG
# ============================================================================

@dataclass(frozen=True, slots=True)
class EventRecord:
    """
    An emitted event with its position in the log.

    Attributes:
        sequence: Monotonic position within the log (0-based)
        migration: Key of the migration (the new asset id)
        timestamp: Ledger time of the committing transition
        event: The event payload
    """
    sequence: int
    migration: str
    timestamp: int
    event: MigrationEvent

    @property
    def kind(self) -> str:
        return self.event.kind

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sequence': self.sequence,
            'migration': self.migration,
            'timestamp': self.timestamp,
            'kind': self.kind,
            'data': asdict(self.event),
        }


EventSubscriber = Callable[[EventRecord], None]


class EventLog:
    """
    Append-only event store.

    Subscribers are called synchronously, in subscription order, for every
    appended record. A subscriber that raises propagates to the emitter; inside
    atomic() the records appended by the failed block are withdrawn.
    """

    def __init__(self):
        self._records: List[EventRecord] = []
        self._subscribers: List[EventSubscriber] = []
        self._lock = threading.RLock()

    def subscribe(self, subscriber: EventSubscriber) -> None:
        self._subscribers.append(subscriber)

    @contextmanager
    def atomic(self) -> Iterator[EventLog]:
        """
        Append a group of events all-or-nothing.

        If the block raises, every record appended inside it is removed and the
        exception propagates. Nested blocks truncate to their own start.
        """
        with self._lock:
            mark = len(self._records)
            try:
                yield self
            except BaseException:
                del self._records[mark:]
                raise

    def append(self, migration: str, timestamp: int, event: MigrationEvent) -> EventRecord:
        """Append an event and notify subscribers. Returns the stored record."""
        with self._lock:
            record = EventRecord(
                sequence=len(self._records),
                migration=migration,
                timestamp=timestamp,
                event=event,
            )
            self._records.append(record)
        for subscriber in self._subscribers:
            subscriber(record)
        return record

    def records(
        self,
        migration: Optional[str] = None,
        kind: Optional[str] = None,
    ) -> List[EventRecord]:
        """Return records, optionally filtered by migration key and event kind."""
        return [
            r for r in list(self._records)
            if (migration is None or r.migration == migration)
            and (kind is None or r.kind == kind)
        ]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[EventRecord]:
        return iter(list(self._records))
