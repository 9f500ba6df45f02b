"""Tests for the HTTP entrypoint."""

import os
import sys

import pytest
from aiohttp import test_utils

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from automation_engine.core.config import ConfigLoader, EngineConfig
from automation_engine.core.errors import DefinitionError
from automation_engine.main import Application, AutomationServer, event_from_payload
from automation_engine.pages import parse_page
from automation_engine.rules.context import EventSource
from automation_engine.rules.models import parse_automation


@pytest.fixture
def server(runner):
    page = parse_page({
        "id": "tasks_page",
        "table": "tasks",
        "actions": [{"id": "copy_title", "type": "copy_to_clipboard", "field_key": "title"}],
        "quick_automations": [{
            "id": "go_home",
            "name": "Go home",
            "trigger": {"type": "manual"},
            "actions": [{"type": "navigate_to_page", "page_id": "home"}],
        }],
    })
    return AutomationServer(runner, {page.id: page})


@pytest.fixture
async def http(server):
    client = test_utils.TestClient(test_utils.TestServer(server.build_app()))
    await client.start_server()
    yield client
    await client.close()


@pytest.fixture
async def stored(store):
    await store.save_automation(parse_automation({
        "id": "open_it",
        "name": "Open it",
        "trigger": {"type": "manual"},
        "actions": [{"type": "open_record", "table": "tasks"}],
    }))
    await store.save_automation(parse_automation({
        "id": "on_create",
        "name": "On create",
        "trigger": {"type": "record_created", "table": "tasks"},
        "actions": [{"type": "webhook"}],
    }))
    return store


class TestEventPayload:
    """Test request body parsing."""

    def test_camel_case_records(self):
        """Test camelCase record keys."""
        event = event_from_payload({
            "table": "tasks",
            "oldRecord": {"id": "t1", "x": 1},
            "newRecord": {"id": "t1", "x": 2},
        })

        assert event.source is EventSource.RECORD
        assert event.subject == {"id": "t1", "x": 2}
        assert event.old_record == {"id": "t1", "x": 1}

    def test_unknown_source(self):
        """Test an unknown event source."""
        with pytest.raises(DefinitionError):
            event_from_payload({"source": "cron"})


class TestAutomationServer:
    """Test routes end to end against the in-memory ports."""

    @pytest.mark.asyncio
    async def test_health(self, http):
        """Test the health route."""
        response = await http.get("/health")

        assert response.status == 200
        assert await response.json() == {"status": "healthy", "pages": 1}

    @pytest.mark.asyncio
    async def test_run_now_returns_effects(self, http, stored):
        """Test a manual run and its client effects."""
        response = await http.post("/automations/open_it/run", json={"record": {"id": "t1"}})
        body = await response.json()

        assert response.status == 200
        assert body["success"] is True
        assert body["message"] == "Automation ran successfully"
        assert body["effects"] == [{"kind": "navigate", "value": "/tables/tasks/t1"}]
        assert body["result"]["log"]["status"] == "success"

    @pytest.mark.asyncio
    async def test_run_now_failure_is_explained(self, http, stored):
        """Test the friendly failure summary."""
        response = await http.post("/automations/open_it/run")
        body = await response.json()

        assert body["success"] is False
        assert body["error"] == "Missing record ID or table"
        assert body["code"] == "MISSING_RECORD_ID"
        assert body["effects"] == []

    @pytest.mark.asyncio
    async def test_validate(self, http):
        """Test the validate route."""
        valid = await http.post("/automations/validate", json={
            "name": "Notify",
            "trigger": {"type": "manual"},
            "actions": [{"type": "webhook", "url": "https://hooks.test/n"}],
        })
        invalid = await http.post("/automations/validate", json={
            "name": "Broken",
            "trigger": {"type": "manual"},
            "actions": [{"type": "webhook"}],
        })

        assert valid.status == 200
        assert (await valid.json())["valid"] is True
        assert invalid.status == 422
        assert (await invalid.json())["errors"] == ["Action 1 (webhook): 'url' field is required"]

    @pytest.mark.asyncio
    async def test_run_now_unknown(self, http, stored):
        """Test running an unknown automation."""
        response = await http.post("/automations/ghost/run")

        assert response.status == 404
        assert await response.json() == {"error": "Automation not found"}

    @pytest.mark.asyncio
    async def test_logs(self, http, stored):
        """Test the logs route."""
        await http.post("/automations/open_it/run", json={"record": {"id": "t1"}})
        await http.post("/automations/open_it/run")

        response = await http.get("/automations/open_it/logs", params={"limit": "1"})
        logs = (await response.json())["logs"]

        assert len(logs) == 1
        assert logs[0]["status"] == "error"

    @pytest.mark.asyncio
    async def test_logs_bad_limit(self, http):
        """Test a non-integer log limit."""
        response = await http.get("/automations/open_it/logs", params={"limit": "many"})

        assert response.status == 400

    @pytest.mark.asyncio
    async def test_record_event(self, http, stored):
        """Test posting a record event."""
        response = await http.post("/events", json={"table": "tasks", "record": {"id": "t9"}})
        body = await response.json()

        assert [r["automation_id"] for r in body["results"]] == ["on_create"]
        assert body["results"][0]["state"] == "partial"

    @pytest.mark.asyncio
    async def test_invalid_bodies(self, http):
        """Test malformed request bodies."""
        not_json = await http.post("/events", data="{oops", headers={"Content-Type": "application/json"})
        not_object = await http.post("/events", json=[1, 2])
        bad_source = await http.post("/events", json={"source": "cron"})

        assert not_json.status == 400
        assert not_object.status == 400
        assert (await bad_source.json())["error"] == "Unknown event source: cron"

    @pytest.mark.asyncio
    async def test_page_quick_automation(self, http):
        """Test a page quick automation."""
        response = await http.post("/pages/tasks_page/events", json={"automation_id": "go_home"})
        body = await response.json()

        assert body["results"][0]["state"] == "success"
        assert body["effects"] == [{"kind": "navigate", "value": "/pages/home"}]

    @pytest.mark.asyncio
    async def test_page_button_action(self, http):
        """Test a page button action."""
        response = await http.post(
            "/pages/tasks_page/events",
            json={"action_id": "copy_title", "record": {"id": "t1", "title": "Write report"}},
        )
        body = await response.json()

        assert body["result"]["success"] is True
        assert body["effects"] == [{"kind": "copy_to_clipboard", "value": "Write report"}]

    @pytest.mark.asyncio
    async def test_page_not_found(self, http):
        """Test unknown pages and actions."""
        missing_page = await http.post("/pages/ghost/events", json={})
        missing_action = await http.post("/pages/tasks_page/events", json={"action_id": "ghost"})

        assert missing_page.status == 404
        assert missing_action.status == 404
        assert await missing_action.json() == {"error": "Action not found"}


class TestDefinitionReload:
    """Test picking up edited definition files without a restart."""

    @pytest.fixture
    def app(self, tmp_path, store):
        (tmp_path / "automations").mkdir()
        (tmp_path / "automations" / "tasks.yaml").write_text(
            "id: ping\nname: Ping\ntrigger: {type: manual}\n"
            "actions: [{type: webhook, url: 'https://hooks.test/p'}]\n"
        )
        app = Application()
        app.loader = ConfigLoader(str(tmp_path))
        app.config = EngineConfig(
            automations_directory=str(tmp_path / "automations"),
            pages_directory=str(tmp_path / "pages"),
        )
        app.store = store
        return app

    @pytest.mark.asyncio
    async def test_reload_only_when_files_change(self, app, tmp_path, store):
        """Test that edits are upserted and unchanged files are left alone."""
        await app.load_definitions()
        assert not await app.reload_if_changed()

        (tmp_path / "automations" / "more.yaml").write_text(
            "id: pong\nname: Pong\ntrigger: {type: manual}\n"
            "actions: [{type: navigate_to_page, page_id: home}]\n"
        )

        assert await app.reload_if_changed()
        assert {a.id for a in await store.list_automations()} == {"ping", "pong"}

    @pytest.mark.asyncio
    async def test_invalid_file_automation_is_skipped(self, app, tmp_path, store):
        """Test that automations failing validation are not saved."""
        (tmp_path / "automations" / "broken.yaml").write_text(
            "id: broken\nname: Broken\ntrigger: {type: manual}\nactions: [{type: webhook}]\n"
        )

        await app.load_definitions()

        assert {a.id for a in await store.list_automations()} == {"ping"}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
