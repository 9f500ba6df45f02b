"""Action dispatch: one executor per action type."""

from typing import Any, Awaitable, Callable, Optional
from dataclasses import dataclass, field

import structlog

from ..core.errors import (
    ClientUnavailableError,
    DefinitionError,
    EngineError,
    LoopPreventionError,
)
from ..ports.client import ClientPort
from ..ports.data import IDENTITY_FIELDS, DataPort
from ..ports.transport import Transport
from .context import ExecutionContext
from .evaluator import ConditionEvaluator
from .models import (
    ACTION_TYPES,
    ActionBase,
    CopyToClipboardAction,
    CreateRecordAction,
    DeleteRecordAction,
    DuplicateRecordAction,
    HttpMethod,
    NavigateToPageAction,
    OpenRecordAction,
    OpenUrlAction,
    RunAutomationAction,
    SendEmailAction,
    SetFieldValueAction,
    UpdateRecordAction,
    WebhookAction,
)
from .templates import interpolate, substitute_url


logger = structlog.get_logger()


CONDITION_NOT_MET_MESSAGE = "Action condition not met"


@dataclass
class ActionResult:
    """
    Structured outcome of one action.

    `skipped` marks an action whose own condition was false. It counts as a
    failure when a firing's results are aggregated.
    """
    success: bool
    data: Any = None
    error: Optional[str] = None
    skipped: bool = False
    action_id: Optional[str] = None
    action_type: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "ActionResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, data: Any = None) -> "ActionResult":
        return cls(success=False, error=error, data=data)

    @classmethod
    def skip(cls, reason: str = CONDITION_NOT_MET_MESSAGE) -> "ActionResult":
        return cls(success=False, error=reason, skipped=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action_id": self.action_id,
            "type": self.action_type,
            "success": self.success,
            "skipped": self.skipped,
            "data": self.data,
            "error": self.error,
        }


# Type alias for action executors
ActionExecutor = Callable[[Any, ExecutionContext], Awaitable[ActionResult]]


class ActionDispatcher:
    """
    Executes actions against the data, transport and client ports.

    Every action type has exactly one executor; construction fails if one is
    missing. Executors return structured results. Any exception escaping an
    executor is converted into a failure here, except DefinitionError, which
    signals a malformed definition and propagates to the caller.
    """

    def __init__(
        self,
        data: DataPort,
        transport: Optional[Transport] = None,
        client: Optional[ClientPort] = None,
        evaluator: Optional[ConditionEvaluator] = None,
    ):
        self.data = data
        self.transport = transport
        self.client = client
        self.evaluator = evaluator or ConditionEvaluator()

        # Set by the runner; run_automation calls back into it
        self._runner = None

        self._executors: dict[type, ActionExecutor] = {
            UpdateRecordAction: self._update_record,
            CreateRecordAction: self._create_record,
            DeleteRecordAction: self._delete_record,
            DuplicateRecordAction: self._duplicate_record,
            NavigateToPageAction: self._navigate_to_page,
            OpenRecordAction: self._open_record,
            SendEmailAction: self._send_email,
            WebhookAction: self._webhook,
            RunAutomationAction: self._run_automation,
            OpenUrlAction: self._open_url,
            SetFieldValueAction: self._set_field_value,
            CopyToClipboardAction: self._copy_to_clipboard,
        }

        missing = [t.__name__ for t in ACTION_TYPES if t not in self._executors]
        if missing:
            raise DefinitionError(f"No executor registered for: {', '.join(missing)}")

    def bind_runner(self, runner) -> None:
        """Attach the runner that executes nested run_automation actions."""
        self._runner = runner

    @property
    def action_types(self) -> list[str]:
        return [t.model_fields["type"].default for t in self._executors]

    async def execute(
        self,
        action: ActionBase,
        context: Optional[ExecutionContext] = None,
    ) -> ActionResult:
        """
        Execute one action within a firing.

        The action id is held in the context's in-flight set for the whole
        call. Re-entering an in-flight action fails with the loop-prevention
        message. An action condition is checked against the context record
        when both are present.
        """
        context = context if context is not None else ExecutionContext()

        executor = self._executors.get(type(action))
        if executor is None:
            raise DefinitionError(f"Unknown action type: {type(action).__name__}")

        try:
            with context.acquire(action.id):
                if action.condition is not None and context.record is not None:
                    if not self.evaluator.evaluate(action.condition, context.record):
                        result = ActionResult.skip()
                    else:
                        result = await executor(action, context)
                else:
                    result = await executor(action, context)
        except LoopPreventionError as e:
            logger.warning("action_loop_prevented", action_id=action.id, action_type=action.type)
            result = ActionResult.fail(e.message)
        except DefinitionError:
            raise
        except EngineError as e:
            result = ActionResult.fail(e.message)
        except Exception as e:
            logger.exception("action_execution_error", action_id=action.id, action_type=action.type)
            result = ActionResult.fail(str(e) or "Failed to execute action")

        result.action_id = action.id
        result.action_type = action.type

        if not result.success and not result.skipped:
            logger.warning(
                "action_failed",
                action_id=action.id,
                action_type=action.type,
                error=result.error,
            )
        return result

    def _client(self, context: ExecutionContext, capability: str) -> ClientPort:
        client = context.client or self.client
        if client is None:
            raise ClientUnavailableError("Client not available", capability=capability)
        return client

    def _record_dict(self, context: ExecutionContext) -> Optional[dict[str, Any]]:
        return context.record.to_dict() if context.record is not None else None

    # ==================== Record actions ====================

    async def _update_record(self, action: UpdateRecordAction, context: ExecutionContext) -> ActionResult:
        if not action.table or action.updates is None:
            return ActionResult.fail("Missing table or updates")

        record_id = action.record_id or context.record_id
        if not record_id:
            return ActionResult.fail("Missing record ID")

        updates = interpolate(action.updates, context.record)
        updated = await self.data.update(action.table, record_id, updates)
        if updated is None:
            return ActionResult.fail("Record not found")

        context.apply_update(record_id, updated)
        return ActionResult.ok(updated)

    async def _create_record(self, action: CreateRecordAction, context: ExecutionContext) -> ActionResult:
        if not action.table or action.updates is None:
            return ActionResult.fail("Missing table or updates")

        created = await self.data.insert(action.table, interpolate(action.updates, context.record))
        return ActionResult.ok(created)

    async def _delete_record(self, action: DeleteRecordAction, context: ExecutionContext) -> ActionResult:
        if not action.table:
            return ActionResult.fail("Missing table")

        record_id = action.record_id or context.record_id
        if not record_id:
            return ActionResult.fail("Missing record ID")

        deleted = await self.data.delete(action.table, record_id)
        return ActionResult.ok({"deleted": deleted, "id": record_id})

    async def _duplicate_record(self, action: DuplicateRecordAction, context: ExecutionContext) -> ActionResult:
        if not action.table:
            return ActionResult.fail("Missing table")

        record_id = action.record_id or context.record_id
        if not record_id:
            return ActionResult.fail("Missing record ID")

        original = await self.data.get(action.table, record_id)
        if original is None:
            return ActionResult.fail("Record not found")

        copy = {k: v for k, v in original.items() if k not in IDENTITY_FIELDS}
        created = await self.data.insert(action.table, copy)
        return ActionResult.ok(created)

    async def _set_field_value(self, action: SetFieldValueAction, context: ExecutionContext) -> ActionResult:
        if not action.field_key or not action.has_field_value:
            return ActionResult.fail("Missing field key or value")

        record_id = action.record_id or context.record_id
        if not record_id or not action.table:
            return ActionResult.fail("Missing record ID or table")

        update = UpdateRecordAction(
            id=action.id,
            table=action.table,
            updates={action.field_key: action.field_value},
            record_id=record_id,
        )
        return await self._update_record(update, context)

    # ==================== Client actions ====================

    async def _navigate_to_page(self, action: NavigateToPageAction, context: ExecutionContext) -> ActionResult:
        if not action.page_id:
            return ActionResult.fail("Missing page ID")

        path = f"/pages/{action.page_id}"
        await self._client(context, "navigate").navigate(path)
        return ActionResult.ok({"path": path})

    async def _open_record(self, action: OpenRecordAction, context: ExecutionContext) -> ActionResult:
        record_id = action.record_id or context.record_id
        if not record_id or not action.table:
            return ActionResult.fail("Missing record ID or table")

        path = f"/tables/{action.table}/{record_id}"
        await self._client(context, "navigate").navigate(path)
        return ActionResult.ok({"path": path})

    async def _open_url(self, action: OpenUrlAction, context: ExecutionContext) -> ActionResult:
        if not action.url:
            return ActionResult.fail("Missing URL")

        url = substitute_url(action.url, context.record)
        await self._client(context, "open_url").open_url(url)
        return ActionResult.ok({"url": url})

    async def _copy_to_clipboard(self, action: CopyToClipboardAction, context: ExecutionContext) -> ActionResult:
        if not action.field_key:
            return ActionResult.fail("Missing field key")

        text = context.record.value(action.field_key).as_text() if context.record is not None else ""
        await self._client(context, "clipboard").copy_to_clipboard(text)
        return ActionResult.ok({"text": text})

    # ==================== Outbound actions ====================

    async def _send_email(self, action: SendEmailAction, context: ExecutionContext) -> ActionResult:
        if not action.to or not action.subject or action.body is None:
            return ActionResult.fail("Missing email details")
        if self.transport is None:
            return ActionResult.fail("Email transport not configured")

        await self.transport.send_email(
            action.to,
            interpolate(action.subject, context.record),
            interpolate(action.body, context.record),
            self._record_dict(context),
        )
        return ActionResult.ok({"to": action.to})

    async def _webhook(self, action: WebhookAction, context: ExecutionContext) -> ActionResult:
        if not action.url:
            return ActionResult.fail("Missing webhook URL")
        if self.transport is None:
            return ActionResult.fail("HTTP transport not configured")

        if action.body is not None:
            body = interpolate(action.body, context.record)
        else:
            body = {"record": self._record_dict(context)}

        response = await self.transport.http_call(
            action.url,
            action.method.value,
            body if action.method is not HttpMethod.GET else None,
            {"Content-Type": "application/json", **action.headers},
        )
        if not response.ok:
            return ActionResult.fail(f"Webhook returned {response.status}", data=response.body)

        return ActionResult.ok(response.body)

    async def _run_automation(self, action: RunAutomationAction, context: ExecutionContext) -> ActionResult:
        if not action.automation_id:
            return ActionResult.fail("Missing automation ID")
        if self._runner is None:
            return ActionResult.fail("Automation runner not available")

        return await self._runner.run_nested(action.automation_id, context)
