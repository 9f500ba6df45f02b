"""Lifecycle events and the per-firing execution context."""

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional

from ..core.errors import LoopPreventionError
from .record import Record


ACTION_LOOP_MESSAGE = "Action already executing (loop prevention)"
AUTOMATION_LOOP_MESSAGE = "Automation already executing (loop prevention)"
DEPTH_LIMIT_MESSAGE = "Automation call depth exceeded (loop prevention)"


class EventSource(str, Enum):
    """Where a lifecycle event came from."""
    RECORD = "record"       # create/update emitted by the CRUD layer
    MANUAL = "manual"       # explicit user invocation
    SCHEDULE = "schedule"   # synthesised by the scheduler for due triggers


@dataclass
class LifecycleEvent:
    """An event that can fire automations."""
    source: EventSource = EventSource.RECORD
    table: Optional[str] = None
    record: Optional[dict[str, Any]] = None
    old_record: Optional[dict[str, Any]] = None
    new_record: Optional[dict[str, Any]] = None
    timestamp: float = 0

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = time.time()

    @classmethod
    def created(cls, table: str, record: dict[str, Any]) -> "LifecycleEvent":
        return cls(source=EventSource.RECORD, table=table, record=record, new_record=record)

    @classmethod
    def updated(
        cls,
        table: str,
        old_record: dict[str, Any],
        new_record: dict[str, Any],
    ) -> "LifecycleEvent":
        return cls(
            source=EventSource.RECORD,
            table=table,
            record=new_record,
            old_record=old_record,
            new_record=new_record,
        )

    @classmethod
    def manual(
        cls,
        record: Optional[dict[str, Any]] = None,
        table: Optional[str] = None,
    ) -> "LifecycleEvent":
        return cls(source=EventSource.MANUAL, table=table, record=record)

    @classmethod
    def scheduled(
        cls,
        record: Optional[dict[str, Any]] = None,
        table: Optional[str] = None,
    ) -> "LifecycleEvent":
        return cls(source=EventSource.SCHEDULE, table=table, record=record)

    @property
    def subject(self) -> Optional[dict[str, Any]]:
        """The record the event is about: the new record, else the plain record."""
        if self.new_record is not None:
            return self.new_record
        return self.record

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source.value,
            "table": self.table,
            "record": self.record,
            "old_record": self.old_record,
            "new_record": self.new_record,
            "timestamp": self.timestamp,
        }


@dataclass
class ExecutionContext:
    """
    Carrier threaded by reference through every action of one firing.

    Holds the subject record, the old/new pair for update firings, and the
    set of in-flight action ids used for loop prevention. Nested
    `run_automation` calls and quick-automation batches share the same
    in-flight set through `fork()`/`descend()`.
    """
    record: Optional[Record] = None
    old_record: Optional[Record] = None
    new_record: Optional[Record] = None
    table: Optional[str] = None
    in_flight: set[str] = field(default_factory=set)
    automation_chain: list[str] = field(default_factory=list)
    depth: int = 0
    client: Optional[Any] = None  # per-invocation ClientPort override

    @classmethod
    def from_event(cls, event: LifecycleEvent) -> "ExecutionContext":
        subject = event.subject
        return cls(
            record=Record.from_dict(subject) if subject is not None else None,
            old_record=Record.from_dict(event.old_record) if event.old_record is not None else None,
            new_record=Record.from_dict(event.new_record) if event.new_record is not None else None,
            table=event.table,
        )

    @property
    def record_id(self) -> Optional[str]:
        return self.record.id if self.record is not None else None

    @contextmanager
    def acquire(self, action_id: str) -> Iterator["ExecutionContext"]:
        """
        Mark an action as in flight for the duration of the block.

        Raises LoopPreventionError if the action is already in flight. The id
        is released on every exit path, including exceptions.
        """
        if action_id in self.in_flight:
            raise LoopPreventionError(ACTION_LOOP_MESSAGE, action_id=action_id)
        self.in_flight.add(action_id)
        try:
            yield self
        finally:
            self.in_flight.discard(action_id)

    def fork(self) -> "ExecutionContext":
        """Sibling context: own record slot, shared in-flight set."""
        return ExecutionContext(
            record=self.record,
            old_record=self.old_record,
            new_record=self.new_record,
            table=self.table,
            in_flight=self.in_flight,
            automation_chain=list(self.automation_chain),
            depth=self.depth,
            client=self.client,
        )

    def descend(self, automation_id: str) -> "ExecutionContext":
        """Child context for a nested automation call."""
        child = self.fork()
        child.automation_chain.append(automation_id)
        child.depth = self.depth + 1
        return child

    def adopt(self, child: "ExecutionContext") -> None:
        """Take over the record state a nested call left behind."""
        if child.record is not None and child.record_id == self.record_id:
            self.record = child.record
            if self.new_record is not None:
                self.new_record = child.record

    def apply_update(self, record_id: str, updated: dict[str, Any]) -> None:
        """Refresh the subject record after an action patched it."""
        if self.record is None or self.record.id != str(record_id):
            return
        self.record = self.record.merged(updated)
        if self.new_record is not None:
            self.new_record = self.record
