"""Time-driven triggers: schedules and approaching dates."""

import asyncio
from datetime import date, datetime
from typing import Any, Optional

import structlog

from ..core.config import SchedulerConfig
from ..ports.data import DataPort
from ..rules.context import LifecycleEvent
from ..rules.engine import AutomationRunner, FiringResult
from ..rules.models import (
    AutomationStatus,
    DateApproachingTrigger,
    ScheduleFrequency,
    ScheduleTrigger,
)
from ..rules.record import FieldValue


logger = structlog.get_logger()


def _at_time(trigger: ScheduleTrigger, now: datetime, required: bool) -> bool:
    if not trigger.time:
        return not required
    hour, minute = (int(part) for part in trigger.time.split(":"))
    return now.hour == hour and now.minute == minute


def is_schedule_due(trigger: ScheduleTrigger, now: datetime) -> bool:
    """
    Whether a schedule trigger is due in the minute containing `now`.

    Daily needs a time. Weekly and monthly need their day; without a time they
    are due for the whole day. Custom (cron) schedules are never due here.
    """
    if trigger.frequency is ScheduleFrequency.DAILY:
        return _at_time(trigger, now, required=True)

    if trigger.frequency is ScheduleFrequency.WEEKLY:
        if trigger.day_of_week is None:
            return False
        # Sunday-based, like day_of_week
        if (now.weekday() + 1) % 7 != trigger.day_of_week:
            return False
        return _at_time(trigger, now, required=False)

    if trigger.frequency is ScheduleFrequency.MONTHLY:
        if trigger.day_of_month is None or now.day != trigger.day_of_month:
            return False
        return _at_time(trigger, now, required=False)

    return False


def is_date_approaching(
    trigger: DateApproachingTrigger,
    record: dict[str, Any],
    today: date,
) -> bool:
    """True when the record's date field is 0..days_before days from today."""
    target = FieldValue.from_raw(record.get(trigger.date_field_key)).as_date()
    if target is None:
        return False
    days = (target - today).days
    return 0 <= days <= trigger.days_before


class AutomationScheduler:
    """
    Raises scheduled firings for time-driven triggers.

    Each tick looks at active automations:
    - schedule: fires once per due minute, or once per due day when the
      schedule has no time
    - date_approaching: fires once per day for each record whose date is
      within the lead time
    """

    def __init__(
        self,
        runner: AutomationRunner,
        data: DataPort,
        config: Optional[SchedulerConfig] = None,
    ):
        self.runner = runner
        self.data = data
        self.config = config or SchedulerConfig()

        self._last_slot: dict[str, str] = {}
        self._last_date_fire: dict[tuple[str, str], date] = {}
        self._stop_event = asyncio.Event()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def tick(self, now: Optional[datetime] = None) -> list[FiringResult]:
        """Fire everything due at `now`. Returns the firings' results."""
        now = now or datetime.now()
        today = now.date()
        results = []

        # Only today's fires can suppress a repeat
        self._last_date_fire = {
            key: day for key, day in self._last_date_fire.items() if day == today
        }

        automations = await self.runner.store.list_automations(AutomationStatus.ACTIVE)
        for automation in automations:
            trigger = automation.trigger

            if isinstance(trigger, ScheduleTrigger):
                # Without a time the whole day is one slot
                slot = now.strftime("%Y-%m-%dT%H:%M" if trigger.time else "%Y-%m-%d")
                if self._last_slot.get(automation.id) == slot:
                    continue
                if not is_schedule_due(trigger, now):
                    continue
                self._last_slot[automation.id] = slot
                results.append(await self.runner.run(automation, LifecycleEvent.scheduled()))

            elif isinstance(trigger, DateApproachingTrigger):
                for record in await self.data.select(trigger.table):
                    if not is_date_approaching(trigger, record, today):
                        continue
                    key = (automation.id, str(record.get("id")))
                    if self._last_date_fire.get(key) == today:
                        continue
                    self._last_date_fire[key] = today
                    event = LifecycleEvent.scheduled(record=record, table=trigger.table)
                    results.append(await self.runner.run(automation, event))

        if results:
            logger.info("scheduler_tick", fired=len(results), at=now.isoformat())
        return results

    async def run_forever(self) -> None:
        """Tick on the configured interval until stop() is called."""
        self._running = True
        self._stop_event.clear()
        logger.info("scheduler_started", interval=self.config.tick_interval_seconds)

        try:
            while not self._stop_event.is_set():
                try:
                    await self.tick()
                except Exception:
                    logger.exception("scheduler_tick_error")

                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(),
                        timeout=self.config.tick_interval_seconds,
                    )
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            logger.info("scheduler_stopped")

    def stop(self) -> None:
        self._stop_event.set()
