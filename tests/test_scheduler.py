"""Tests for schedule and date-approaching triggers."""

import os
import sys
from datetime import date, datetime

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from automation_engine.orchestrator import AutomationScheduler, is_date_approaching, is_schedule_due
from automation_engine.ports.data import InMemoryDataPort
from automation_engine.rules.models import DateApproachingTrigger, ScheduleTrigger, parse_automation


# 2024-03-06 is a Wednesday
WEDNESDAY_9AM = datetime(2024, 3, 6, 9, 0, 30)


class TestScheduleDue:
    """Test calendar matching for schedule triggers."""

    @pytest.mark.parametrize("trigger,now,expected", [
        ({"frequency": "daily", "time": "09:00"}, WEDNESDAY_9AM, True),
        ({"frequency": "daily", "time": "09:01"}, WEDNESDAY_9AM, False),
        ({"frequency": "daily"}, WEDNESDAY_9AM, False),
        ({"frequency": "weekly", "day_of_week": 3, "time": "09:00"}, WEDNESDAY_9AM, True),
        ({"frequency": "weekly", "day_of_week": 3}, datetime(2024, 3, 6, 17, 45), True),
        ({"frequency": "weekly", "day_of_week": 0, "time": "09:00"}, WEDNESDAY_9AM, False),
        ({"frequency": "weekly", "day_of_week": 0}, datetime(2024, 3, 10, 12, 0), True),
        ({"frequency": "weekly"}, WEDNESDAY_9AM, False),
        ({"frequency": "monthly", "day_of_month": 6, "time": "09:00"}, WEDNESDAY_9AM, True),
        ({"frequency": "monthly", "day_of_month": 7}, WEDNESDAY_9AM, False),
        ({"frequency": "monthly", "day_of_month": 6}, datetime(2024, 3, 6, 23, 59), True),
        ({"frequency": "custom", "cron": "* * * * *"}, WEDNESDAY_9AM, False),
    ])
    def test_is_schedule_due(self, trigger, now, expected):
        """Test schedule due-ness."""
        assert is_schedule_due(ScheduleTrigger(**trigger), now) is expected


class TestDateApproaching:
    """Test the lead-time window."""

    @pytest.mark.parametrize("due,expected", [
        ("2024-03-06", True),
        ("2024-03-09", True),
        ("2024-03-10", False),
        ("2024-03-05", False),
        ("2024-03-08T10:00:00Z", True),
        ("not a date", False),
        (None, False),
    ])
    def test_window(self, due, expected):
        """Test the days_before window."""
        trigger = DateApproachingTrigger(table="tasks", date_field_key="due", days_before=3)
        assert is_date_approaching(trigger, {"due": due}, date(2024, 3, 6)) is expected

    def test_date_objects(self):
        """Test date field values."""
        trigger = DateApproachingTrigger(table="tasks", date_field_key="due")
        assert is_date_approaching(trigger, {"due": date(2024, 3, 6)}, date(2024, 3, 6))


class TestScheduler:
    """Test ticking over stored automations."""

    @pytest.mark.asyncio
    async def test_schedule_fires_once_per_minute(self, runner, store, data):
        """Test that a timed schedule fires once per minute."""
        await store.save_automation(parse_automation({
            "id": "morning",
            "name": "Morning",
            "trigger": {"type": "schedule", "frequency": "daily", "time": "09:00"},
            "actions": [{"type": "navigate_to_page", "page_id": "today"}],
        }))
        scheduler = AutomationScheduler(runner, data)

        first = await scheduler.tick(WEDNESDAY_9AM)
        again = await scheduler.tick(datetime(2024, 3, 6, 9, 0, 50))
        later = await scheduler.tick(datetime(2024, 3, 6, 9, 1))
        next_day = await scheduler.tick(datetime(2024, 3, 7, 9, 0))

        assert len(first) == 1
        assert again == []
        assert later == []
        assert len(next_day) == 1
        assert len(await store.list_logs("morning")) == 2

    @pytest.mark.asyncio
    async def test_timeless_weekly_schedule_fires_once_per_day(self, runner, store, data):
        """Test that a weekly schedule without a time fires once on its day."""
        await store.save_automation(parse_automation({
            "id": "weekly",
            "name": "Weekly",
            "trigger": {"type": "schedule", "frequency": "weekly", "day_of_week": 3},
            "actions": [{"type": "navigate_to_page", "page_id": "review"}],
        }))
        scheduler = AutomationScheduler(runner, data)

        fired = 0
        for minute in range(5):
            fired += len(await scheduler.tick(datetime(2024, 3, 6, 9, minute)))
        evening = await scheduler.tick(datetime(2024, 3, 6, 18, 30))
        next_week = await scheduler.tick(datetime(2024, 3, 13, 8, 0))

        assert fired == 1
        assert evening == []
        assert len(next_week) == 1

    @pytest.mark.asyncio
    async def test_paused_schedule_does_not_fire(self, runner, store, data):
        """Test paused schedules."""
        await store.save_automation(parse_automation({
            "id": "off",
            "name": "Off",
            "status": "paused",
            "trigger": {"type": "schedule", "frequency": "daily", "time": "09:00"},
            "actions": [{"type": "navigate_to_page", "page_id": "today"}],
        }))

        assert await AutomationScheduler(runner, data).tick(WEDNESDAY_9AM) == []

    @pytest.mark.asyncio
    async def test_date_approaching_fires_per_record_per_day(self, runner, store, transport):
        """Test date_approaching firing per record."""
        data = InMemoryDataPort({"tasks": [
            {"id": "soon", "due": "2024-03-07"},
            {"id": "later", "due": "2024-04-01"},
            {"id": "none"},
        ]})
        await store.save_automation(parse_automation({
            "id": "reminder",
            "name": "Reminder",
            "trigger": {"type": "date_approaching", "table": "tasks", "date_field_key": "due", "days_before": 2},
            "actions": [{"type": "webhook", "url": "https://hooks.test/remind"}],
        }))
        scheduler = AutomationScheduler(runner, data)

        first = await scheduler.tick(WEDNESDAY_9AM)
        same_day = await scheduler.tick(datetime(2024, 3, 6, 15, 0))
        next_day = await scheduler.tick(datetime(2024, 3, 7, 9, 0))

        assert len(first) == 1
        assert transport.calls[0]["body"] == {"record": {"id": "soon", "due": "2024-03-07"}}
        assert same_day == []
        assert len(next_day) == 1

    @pytest.mark.asyncio
    async def test_date_fires_forgotten_after_the_day(self, runner, store):
        """Test that per-record fire markers only cover the current day."""
        data = InMemoryDataPort({"tasks": [{"id": "soon", "due": "2024-03-07"}]})
        await store.save_automation(parse_automation({
            "id": "reminder",
            "name": "Reminder",
            "trigger": {"type": "date_approaching", "table": "tasks", "date_field_key": "due", "days_before": 2},
            "actions": [{"type": "navigate_to_page", "page_id": "today"}],
        }))
        scheduler = AutomationScheduler(runner, data)

        await scheduler.tick(WEDNESDAY_9AM)
        assert set(scheduler._last_date_fire) == {("reminder", "soon")}

        await scheduler.tick(datetime(2024, 3, 20, 9, 0))
        assert scheduler._last_date_fire == {}

    @pytest.mark.asyncio
    async def test_stop_before_start(self, runner, data):
        """Test stopping an idle scheduler."""
        scheduler = AutomationScheduler(runner, data)
        scheduler.stop()

        assert not scheduler.is_running


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
