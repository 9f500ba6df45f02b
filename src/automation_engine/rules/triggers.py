"""Trigger matching: does a lifecycle event fire a trigger?"""

from typing import Callable, Optional

from ..core.errors import DefinitionError
from .context import EventSource, LifecycleEvent
from .evaluator import ConditionEvaluator
from .models import (
    DateApproachingTrigger,
    FieldMatchTrigger,
    ManualTrigger,
    RecordCreatedTrigger,
    RecordUpdatedTrigger,
    ScheduleTrigger,
)


class TriggerMatcher:
    """
    Gates automations on event shape.

    - manual: always matches
    - record_created: new record present, no old record
    - record_updated: old and new record present, and any field filter passes
    - field_match: same table and the record satisfies the field condition
    - schedule / date_approaching: accepted when the scheduler (or a user)
      raises the firing; calendar math happens in the scheduler

    Record-shaped triggers only match record events on their own table. An
    event that names no table matches none of them.
    """

    def __init__(self, evaluator: Optional[ConditionEvaluator] = None):
        self.evaluator = evaluator or ConditionEvaluator()
        self._matchers: dict[type, Callable[..., bool]] = {
            ManualTrigger: self._match_manual,
            RecordCreatedTrigger: self._match_record_created,
            RecordUpdatedTrigger: self._match_record_updated,
            FieldMatchTrigger: self._match_field,
            ScheduleTrigger: self._match_time_driven,
            DateApproachingTrigger: self._match_time_driven,
        }

    def matches(self, trigger, event: LifecycleEvent) -> bool:
        matcher = self._matchers.get(type(trigger))
        if matcher is None:
            raise DefinitionError(f"Unknown trigger type: {type(trigger).__name__}")
        return matcher(trigger, event)

    def _match_manual(self, trigger: ManualTrigger, event: LifecycleEvent) -> bool:
        return True

    def _match_record_created(self, trigger: RecordCreatedTrigger, event: LifecycleEvent) -> bool:
        if event.source is not EventSource.RECORD or not self._table_matches(trigger.table, event):
            return False
        return event.subject is not None and event.old_record is None

    def _match_record_updated(self, trigger: RecordUpdatedTrigger, event: LifecycleEvent) -> bool:
        if event.source is not EventSource.RECORD or not self._table_matches(trigger.table, event):
            return False
        if event.old_record is None or event.new_record is None:
            return False
        if not trigger.field_filters:
            return True
        return any(f.passes(event.old_record, event.new_record) for f in trigger.field_filters)

    def _match_field(self, trigger: FieldMatchTrigger, event: LifecycleEvent) -> bool:
        if event.source is not EventSource.RECORD or not self._table_matches(trigger.table, event):
            return False
        record = event.subject
        if record is None:
            return False
        return self.evaluator.evaluate(trigger.condition, record)

    def _match_time_driven(self, trigger, event: LifecycleEvent) -> bool:
        return event.source in (EventSource.SCHEDULE, EventSource.MANUAL)

    @staticmethod
    def _table_matches(table: str, event: LifecycleEvent) -> bool:
        return event.table == table


_default_matcher = TriggerMatcher()


def matches(trigger, event: LifecycleEvent) -> bool:
    """Module-level shortcut using a shared matcher."""
    return _default_matcher.matches(trigger, event)
