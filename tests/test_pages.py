"""Tests for page actions and quick automations."""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from automation_engine.core.errors import DefinitionError
from automation_engine.pages import QuickAutomationRunner, execute_page_action, parse_page, run_page_automations
from automation_engine.ports.client import ClientEffect
from automation_engine.rules.context import ACTION_LOOP_MESSAGE, ExecutionContext, LifecycleEvent
from automation_engine.rules.engine import FiringState
from automation_engine.rules.models import parse_action, parse_quick_automation


def quick(quick_id, actions, trigger=None, **extra):
    return parse_quick_automation({
        "id": quick_id,
        "name": quick_id,
        "trigger": trigger or {"type": "manual"},
        "actions": actions,
        **extra,
    })


@pytest.fixture
def page():
    return parse_page({
        "id": "tasks_page",
        "name": "Tasks",
        "table": "tasks",
        "actions": [
            {"id": "open_docs", "type": "open_url", "url": "https://docs.test/{id}"},
        ],
        "quickAutomations": [
            {
                "id": "mark_done",
                "name": "Mark done",
                "trigger": {"type": "manual"},
                "actions": [{"type": "set_field_value", "table": "tasks", "fieldKey": "status", "fieldValue": "done"}],
            },
            {
                "id": "go_home",
                "name": "Go home",
                "trigger": {"type": "manual"},
                "actions": [{"type": "navigate_to_page", "pageId": "home"}],
            },
        ],
    })


class TestPageConfig:
    """Test page parsing."""

    def test_parses_camel_case(self, page):
        """Test page parsing."""
        assert page.table == "tasks"
        assert [q.id for q in page.quick_automations] == ["mark_done", "go_home"]
        assert page.quick_automations[0].actions[0].field_key == "status"
        assert page.get_action("open_docs").url == "https://docs.test/{id}"
        assert page.get_action("nope") is None

    def test_schedule_trigger_not_allowed(self):
        """Test that quick automations reject schedule triggers."""
        with pytest.raises(DefinitionError):
            parse_page({
                "id": "p",
                "quick_automations": [{
                    "name": "Nightly",
                    "trigger": {"type": "schedule", "frequency": "daily", "time": "09:00"},
                    "actions": [{"type": "navigate_to_page", "page_id": "x"}],
                }],
            })


class TestQuickAutomations:
    """Test the concurrent fan-out over quick automations."""

    @pytest.mark.asyncio
    async def test_all_manual_automations_run(self, runner, page, data, client, store):
        """Test running every manual quick automation."""
        quick_runner = QuickAutomationRunner(runner)
        event = LifecycleEvent.manual(record=await data.get("tasks", "t1"))

        results = await quick_runner.handle_page_event(page, event)

        assert len(results) == 2
        assert all(r.state is FiringState.SUCCESS for r in results)
        assert (await data.get("tasks", "t1"))["status"] == "done"
        assert client.effects == [ClientEffect("navigate", "/pages/home")]
        assert event.table == "tasks"
        # Quick automations keep no run history
        assert await store.list_logs() == []

    @pytest.mark.asyncio
    async def test_narrowed_to_one_automation(self, runner, page, data, client):
        """Test running one quick automation by id."""
        event = LifecycleEvent.manual(record=await data.get("tasks", "t1"))

        results = await QuickAutomationRunner(runner).handle_page_event(page, event, automation_id="go_home")

        assert [r.automation_id for r in results] == ["go_home"]
        assert (await data.get("tasks", "t1"))["status"] == "open"

    @pytest.mark.asyncio
    async def test_manual_automations_skip_record_events(self, runner, client):
        """Test that manual triggers ignore record events."""
        automations = [
            quick("button", [{"type": "navigate_to_page", "page_id": "a"}]),
            quick(
                "on_create",
                [{"type": "navigate_to_page", "page_id": "b"}],
                trigger={"type": "record_created", "table": "tasks"},
            ),
        ]

        results = await run_page_automations(runner, automations, LifecycleEvent.created("tasks", {"id": "t3"}))

        assert [r.automation_id for r in results] == ["on_create"]
        assert client.effects == [ClientEffect("navigate", "/pages/b")]

    @pytest.mark.asyncio
    async def test_field_match_trigger(self, runner, transport):
        """Test field_match quick automations."""
        automations = [quick(
            "done_hook",
            [{"type": "webhook", "url": "https://hooks.test/done"}],
            trigger={"type": "field_match", "table": "tasks", "field_key": "status", "operator": "equals", "value": "done"},
        )]

        matched = await run_page_automations(runner, automations, LifecycleEvent.created("tasks", {"id": "t5", "status": "done"}))
        unmatched = await run_page_automations(runner, automations, LifecycleEvent.created("tasks", {"id": "t6", "status": "open"}))

        assert len(matched) == 1
        assert unmatched == []
        assert len(transport.calls) == 1

    @pytest.mark.asyncio
    async def test_conditions_reject_without_running(self, runner, client):
        """Test condition rejection."""
        automations = [quick(
            "guarded",
            [{"type": "navigate_to_page", "page_id": "a"}],
            conditions=[{"type": "field", "field_key": "x", "operator": "greater_than", "value": 3}],
        )]

        results = await run_page_automations(runner, automations, LifecycleEvent.manual(record={"id": "t1", "x": 1}))

        assert results[0].rejection_reason == "conditions"
        assert client.effects == []

    @pytest.mark.asyncio
    async def test_shared_action_id_across_batch(self, runner, transport):
        """Test loop prevention across a concurrent batch."""
        transport.delay = 0.05
        hook = {"id": "hook", "type": "webhook", "url": "https://hooks.test/h"}
        automations = [quick("first", [hook]), quick("second", [hook])]
        context = ExecutionContext()

        results = await run_page_automations(runner, automations, LifecycleEvent.manual(), context)

        errors = [r.action_results[0].error for r in results]
        assert errors.count(ACTION_LOOP_MESSAGE) == 1
        assert errors.count(None) == 1
        assert len(transport.calls) == 1
        assert context.in_flight == set()

    @pytest.mark.asyncio
    async def test_empty_batch(self, runner):
        """Test an empty batch."""
        assert await run_page_automations(runner, [], LifecycleEvent.manual()) == []


class TestPageActions:
    """Test page button actions."""

    @pytest.mark.asyncio
    async def test_execute_page_action(self, runner, page, client):
        """Test a page button action."""
        context = ExecutionContext.from_event(LifecycleEvent.manual(record={"id": "t1"}))

        result = await execute_page_action(runner, page.get_action("open_docs"), context)

        assert result.success
        assert client.effects == [ClientEffect("open_url", "https://docs.test/t1")]

    @pytest.mark.asyncio
    async def test_page_action_without_context(self, runner):
        """Test a page action with no context."""
        action = parse_action({"type": "open_record", "table": "tasks"})

        result = await QuickAutomationRunner(runner).execute_page_action(action)

        assert result.error == "Missing record ID or table"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
