"""Shared fixtures: in-memory ports and a wired runner."""

import asyncio
import os
import sys
from typing import Any, Optional

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from automation_engine.core.state import InMemoryAutomationStore
from automation_engine.ports.client import RecordingClient
from automation_engine.ports.data import InMemoryDataPort
from automation_engine.ports.transport import HttpResponse, Transport
from automation_engine.rules.actions import ActionDispatcher
from automation_engine.rules.engine import AutomationRunner


class FakeTransport(Transport):
    """Records calls; status, body and errors are set per test."""

    def __init__(self):
        self.status = 200
        self.body: Any = {"ok": True}
        self.error: Optional[Exception] = None
        self.email_error: Optional[Exception] = None
        self.delay = 0.0
        self.calls: list[dict[str, Any]] = []
        self.emails: list[dict[str, Any]] = []

    async def http_call(self, url, method="POST", body=None, headers=None):
        self.calls.append({"url": url, "method": method, "body": body, "headers": headers})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return HttpResponse(status=self.status, body=self.body)

    async def send_email(self, to, subject, body, record=None):
        if self.email_error:
            raise self.email_error
        self.emails.append({"to": to, "subject": subject, "body": body, "record": record})


@pytest.fixture
def data():
    return InMemoryDataPort({
        "tasks": [
            {"id": "t1", "title": "Write report", "status": "open", "x": 0},
            {"id": "t2", "title": "Review", "status": "done", "x": 5},
        ],
    })


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def client():
    return RecordingClient()


@pytest.fixture
def store():
    return InMemoryAutomationStore()


@pytest.fixture
def dispatcher(data, transport, client):
    return ActionDispatcher(data, transport, client)


@pytest.fixture
def runner(dispatcher, store):
    return AutomationRunner(dispatcher, store)
