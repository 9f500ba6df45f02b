"""
Main entry point for the automation engine.

Starts the store, the scheduler, the HTTP server and signal handlers.
"""

import asyncio
import json
import signal
import sys
import os
from pathlib import Path
from typing import Any, Optional

import structlog
from aiohttp import web
from dotenv import load_dotenv

from .core.config import ConfigLoader, EngineConfig
from .core.errors import DefinitionError, EngineError
from .core.state import AutomationStore
from .orchestrator.scheduler import AutomationScheduler
from .pages.models import PageConfig
from .pages.quick import QuickAutomationRunner
from .ports.client import RecordingClient
from .ports.data import SqliteDataPort
from .ports.transport import HttpxTransport
from .rules.actions import ActionDispatcher
from .rules.context import EventSource, ExecutionContext, LifecycleEvent
from .rules.engine import AutomationRunner
from .rules.validation import validate_automation


logger = structlog.get_logger()


def configure_logging() -> None:
    """Configure structured logging. LOG_FORMAT=json switches to JSON lines."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if os.getenv("LOG_FORMAT") == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def event_from_payload(payload: dict[str, Any], default_source: EventSource = EventSource.RECORD) -> LifecycleEvent:
    """Build a lifecycle event from a request body. Accepts camelCase record keys."""
    try:
        source = EventSource(payload.get("source", default_source.value))
    except ValueError:
        raise DefinitionError(f"Unknown event source: {payload.get('source')}")

    return LifecycleEvent(
        source=source,
        table=payload.get("table"),
        record=payload.get("record"),
        old_record=payload.get("old_record", payload.get("oldRecord")),
        new_record=payload.get("new_record", payload.get("newRecord")),
    )


@web.middleware
async def error_middleware(request: web.Request, handler):
    """Turn engine errors into JSON responses."""
    try:
        return await handler(request)
    except DefinitionError as e:
        return web.json_response({"error": e.message}, status=400)
    except EngineError as e:
        logger.warning("request_failed", path=request.path, error=e.message)
        return web.json_response({"error": e.message}, status=500)


class AutomationServer:
    """HTTP entrypoint for manual runs, lifecycle events and page events."""

    def __init__(
        self,
        runner: AutomationRunner,
        pages: Optional[dict[str, PageConfig]] = None,
        host: str = "0.0.0.0",
        port: int = 8080,
    ):
        self.runner = runner
        self.quick = QuickAutomationRunner(runner)
        self.pages = pages or {}
        self.host = host
        self.port = port
        self._runner: Optional[web.AppRunner] = None

    def build_app(self) -> web.Application:
        app = web.Application(middlewares=[error_middleware])
        app.router.add_get("/health", self._health_handler)
        app.router.add_post("/automations/validate", self._validate_handler)
        app.router.add_post("/automations/{automation_id}/run", self._run_now_handler)
        app.router.add_get("/automations/{automation_id}/logs", self._logs_handler)
        app.router.add_post("/events", self._event_handler)
        app.router.add_post("/pages/{page_id}/events", self._page_event_handler)
        return app

    async def start(self) -> None:
        """Start the HTTP server."""
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()

        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()

        logger.info("server_started", host=self.host, port=self.port)

    async def stop(self) -> None:
        """Stop the HTTP server."""
        if self._runner:
            await self._runner.cleanup()
            logger.info("server_stopped")

    async def _read_json(self, request: web.Request) -> dict[str, Any]:
        if not request.can_read_body:
            return {}
        try:
            payload = await request.json()
        except ValueError:
            raise DefinitionError("Request body must be JSON")
        if not isinstance(payload, dict):
            raise DefinitionError("Request body must be a JSON object")
        return payload

    async def _health_handler(self, request: web.Request) -> web.Response:
        """Basic health check - is the process alive."""
        return web.json_response({"status": "healthy", "pages": len(self.pages)})

    async def _validate_handler(self, request: web.Request) -> web.Response:
        result = validate_automation(await self._read_json(request))
        return web.json_response(result.to_dict(), status=200 if result.valid else 422)

    async def _run_now_handler(self, request: web.Request) -> web.Response:
        automation_id = request.match_info["automation_id"]
        payload = await self._read_json(request)

        client = RecordingClient()
        context = ExecutionContext.from_event(
            LifecycleEvent.manual(record=payload.get("record"), table=payload.get("table"))
        )
        context.client = client

        result = await self.runner.run_now(
            automation_id,
            record=payload.get("record"),
            table=payload.get("table"),
            context=context,
        )
        if result is None:
            return web.json_response({"error": "Automation not found"}, status=404)

        return web.json_response({
            **result.summary(),
            "result": result.to_dict(),
            "effects": [e.to_dict() for e in client.drain()],
        }, dumps=_dumps)

    async def _logs_handler(self, request: web.Request) -> web.Response:
        automation_id = request.match_info["automation_id"]
        try:
            limit = int(request.query.get("limit", "50"))
        except ValueError:
            raise DefinitionError("limit must be an integer")

        logs = await self.runner.store.list_logs(automation_id, limit=limit)
        return web.json_response({"logs": [log.to_dict() for log in logs]}, dumps=_dumps)

    async def _event_handler(self, request: web.Request) -> web.Response:
        event = event_from_payload(await self._read_json(request))

        client = RecordingClient()
        context = ExecutionContext.from_event(event)
        context.client = client

        results = await self.runner.process_event(event, context)
        return web.json_response({
            "results": [r.to_dict() for r in results],
            "effects": [e.to_dict() for e in client.drain()],
        }, dumps=_dumps)

    async def _page_event_handler(self, request: web.Request) -> web.Response:
        page = self.pages.get(request.match_info["page_id"])
        if page is None:
            return web.json_response({"error": "Page not found"}, status=404)

        payload = await self._read_json(request)
        event = event_from_payload(payload, default_source=EventSource.MANUAL)
        if event.table is None:
            event.table = page.table

        client = RecordingClient()
        context = ExecutionContext.from_event(event)
        context.client = client

        action_id = payload.get("action_id")
        if action_id is not None:
            action = page.get_action(action_id)
            if action is None:
                return web.json_response({"error": "Action not found"}, status=404)
            result = await self.quick.execute_page_action(action, context)
            body = {"result": result.to_dict()}
        else:
            results = await self.quick.handle_page_event(
                page, event, context, automation_id=payload.get("automation_id")
            )
            body = {"results": [r.to_dict() for r in results]}

        body["effects"] = [e.to_dict() for e in client.drain()]
        return web.json_response(body, dumps=_dumps)


def _dumps(data: Any) -> str:
    return json.dumps(data, default=str)


class Application:
    """Main application container."""

    def __init__(self):
        self.config: Optional[EngineConfig] = None
        self.loader: Optional[ConfigLoader] = None
        self.store: Optional[AutomationStore] = None
        self.data: Optional[SqliteDataPort] = None
        self.transport: Optional[HttpxTransport] = None
        self.runner: Optional[AutomationRunner] = None
        self.scheduler: Optional[AutomationScheduler] = None
        self.server: Optional[AutomationServer] = None
        self.pages: dict[str, PageConfig] = {}
        self._scheduler_task: Optional[asyncio.Task] = None
        self._reload_task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """Start all components."""
        logger.info("application_starting")

        # Determine config path
        config_path = os.getenv("CONFIG_PATH", "./config/engine.yaml")
        self.loader = ConfigLoader(str(Path(config_path).parent))
        self.config = self.loader.load_engine_config(config_path if os.path.exists(config_path) else None)

        self.store = AutomationStore(self.config.store.database_path)
        await self.store.initialize()
        self.data = SqliteDataPort(self.config.store.records_path)
        await self.data.initialize()
        self.transport = HttpxTransport(self.config.transport)

        dispatcher = ActionDispatcher(self.data, self.transport)
        self.runner = AutomationRunner(dispatcher, self.store, self.config.runner)

        await self.load_definitions()

        if self.config.scheduler.enabled:
            self.scheduler = AutomationScheduler(self.runner, self.data, self.config.scheduler)
            self._scheduler_task = asyncio.create_task(self.scheduler.run_forever())

        self.server = AutomationServer(
            self.runner,
            self.pages,
            host=self.config.server.host,
            port=self.config.server.port,
        )
        await self.server.start()

        if self.config.reload_interval_seconds:
            self._reload_task = asyncio.create_task(self._reload_loop())

        logger.info("application_started", config_hash=self.config.config_hash())

    async def load_definitions(self) -> None:
        """Upsert file automations into the store and rebuild the page map."""
        for automation in self.loader.load_automations(self.config.automations_directory):
            check = validate_automation(automation)
            if not check.valid:
                logger.error("automation_invalid", automation_id=automation.id, errors=check.errors)
                continue
            for warning in check.warnings:
                logger.warning("automation_warning", automation_id=automation.id, warning=warning)
            await self.store.save_automation(automation)

        self.pages = {page.id: page for page in self.loader.load_pages(self.config.pages_directory)}
        if self.server:
            self.server.pages = self.pages
        logger.info("definitions_loaded", pages=len(self.pages))

    async def reload_if_changed(self) -> bool:
        """Reload definitions when a definition file was added, removed or edited."""
        if not self.loader.definitions_changed():
            return False
        logger.info("definitions_changed")
        await self.load_definitions()
        return True

    async def _reload_loop(self) -> None:
        """Background task that picks up edited definition files."""
        while not self._shutdown_event.is_set():
            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=self.config.reload_interval_seconds,
                )
            except asyncio.TimeoutError:
                pass

            if self._shutdown_event.is_set():
                break
            try:
                await self.reload_if_changed()
            except Exception:
                logger.exception("reload_error")

    async def stop(self) -> None:
        """Stop all components."""
        logger.info("application_stopping")

        if self.server:
            await self.server.stop()

        if self._reload_task:
            self._shutdown_event.set()
            await self._reload_task

        if self.scheduler:
            self.scheduler.stop()
        if self._scheduler_task:
            await self._scheduler_task

        if self.transport:
            await self.transport.close()
        if self.data:
            await self.data.close()
        if self.store:
            await self.store.close()

        logger.info("application_stopped")

    async def run(self) -> None:
        """Run until shutdown signal."""
        await self._shutdown_event.wait()

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


async def main() -> None:
    """Main entry point."""
    app = Application()

    # Setup signal handlers
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("shutdown_signal_received")
        app.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await app.start()
        await app.run()
    except Exception:
        logger.exception("application_error")
        sys.exit(1)
    finally:
        await app.stop()


def run() -> None:
    load_dotenv()
    configure_logging()
    asyncio.run(main())


if __name__ == "__main__":
    run()
