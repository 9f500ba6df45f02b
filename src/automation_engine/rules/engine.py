"""Automation runner - matches triggers, checks conditions, executes actions."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import structlog

from ..core.config import RunnerConfig
from ..core.errors import DefinitionError, LoopPreventionError
from .actions import ActionDispatcher, ActionResult
from .context import (
    AUTOMATION_LOOP_MESSAGE,
    DEPTH_LIMIT_MESSAGE,
    EventSource,
    ExecutionContext,
    LifecycleEvent,
)
from .evaluator import ConditionEvaluator
from .messages import friendly_error
from .models import (
    Automation,
    AutomationLog,
    AutomationStatus,
    LogStatus,
    ManualTrigger,
)
from .triggers import TriggerMatcher


logger = structlog.get_logger()


class FiringState(str, Enum):
    """Terminal states of one firing."""
    REJECTED = "rejected"   # trigger or top-level conditions did not match
    SUCCESS = "success"     # every action succeeded
    PARTIAL = "partial"     # at least one action failed or was skipped


@dataclass
class FiringResult:
    """Outcome of one automation firing."""
    automation_id: str
    state: FiringState
    action_results: list[ActionResult] = field(default_factory=list)
    log: Optional[AutomationLog] = None
    rejection_reason: Optional[str] = None  # trigger, conditions, paused
    duration_ms: float = 0

    @property
    def success(self) -> bool:
        return self.state is FiringState.SUCCESS

    @property
    def failed_results(self) -> list[ActionResult]:
        return [r for r in self.action_results if not r.success]

    @property
    def error(self) -> Optional[str]:
        """Error of the first failing action, if any."""
        failed = self.failed_results
        return failed[0].error if failed else None

    def summary(self) -> dict[str, Any]:
        """Human-readable verdict for manual "run now" callers."""
        if self.state is FiringState.REJECTED:
            return {
                "success": False,
                "state": self.state.value,
                "message": f"Automation did not run ({self.rejection_reason} not met)",
            }
        if self.success:
            return {
                "success": True,
                "state": self.state.value,
                "message": "Automation ran successfully",
            }

        friendly = friendly_error(self.error)
        return {
            "success": False,
            "state": self.state.value,
            "message": friendly.message,
            "suggestion": friendly.suggestion,
            "code": friendly.code,
            "error": self.error,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "automation_id": self.automation_id,
            "state": self.state.value,
            "rejection_reason": self.rejection_reason,
            "duration_ms": self.duration_ms,
            "action_results": [r.to_dict() for r in self.action_results],
            "log": self.log.to_dict() if self.log else None,
        }


class AutomationRunner:
    """
    Runs automations end to end.

    Flow:
    1. Match the trigger against the event (no match: rejected, not logged)
    2. Evaluate top-level conditions against the record (false: rejected)
    3. Execute actions in declared order, one at a time; a failing action
       does not stop the ones after it
    4. Aggregate: success only if every action succeeded
    5. Write one AutomationLog per top-level firing

    Nested `run_automation` actions come back through `run_nested`, which
    shares the caller's context. Cycles between automations are stopped by
    the automation chain and the depth limit.
    """

    def __init__(
        self,
        dispatcher: ActionDispatcher,
        store=None,
        config: Optional[RunnerConfig] = None,
        matcher: Optional[TriggerMatcher] = None,
        evaluator: Optional[ConditionEvaluator] = None,
    ):
        self.dispatcher = dispatcher
        self.store = store
        self.config = config or RunnerConfig()
        self.evaluator = evaluator or dispatcher.evaluator
        self.matcher = matcher or TriggerMatcher(self.evaluator)

        dispatcher.bind_runner(self)

    async def run(
        self,
        automation: Automation,
        event: LifecycleEvent,
        context: Optional[ExecutionContext] = None,
    ) -> FiringResult:
        """
        Top-level firing of an automation for an event.

        Paused automations only run for manual events.
        """
        if not automation.is_active and event.source is not EventSource.MANUAL:
            logger.debug("automation_paused", automation_id=automation.id)
            return FiringResult(
                automation_id=automation.id,
                state=FiringState.REJECTED,
                rejection_reason="paused",
            )

        context = self._top_level_context(automation, event, context)
        return await self.fire(automation, event, context)

    async def run_automation(
        self,
        automation: Automation,
        event: LifecycleEvent,
    ) -> Optional[AutomationLog]:
        """Run and return the firing's log. None when the firing was rejected."""
        result = await self.run(automation, event)
        return result.log

    async def run_now(
        self,
        automation_id: str,
        record: Optional[dict[str, Any]] = None,
        table: Optional[str] = None,
        context: Optional[ExecutionContext] = None,
    ) -> Optional[FiringResult]:
        """
        Manual "run now" from the UI.

        Skips trigger matching, still evaluates conditions, and runs paused
        automations. Returns None when the automation does not exist.
        """
        automation = await self.store.get_automation(automation_id)
        if automation is None:
            return None

        event = LifecycleEvent.manual(record=record, table=table)
        context = self._top_level_context(automation, event, context)
        result = await self.fire(automation, event, context, check_trigger=False)

        logger.info(
            "automation_run_now",
            automation_id=automation_id,
            state=result.state.value,
            error=result.error,
        )
        return result

    async def process_event(
        self,
        event: LifecycleEvent,
        context: Optional[ExecutionContext] = None,
    ) -> list[FiringResult]:
        """
        Route an event to every active automation whose trigger matches.

        Manual-trigger automations are only considered for manual events.
        Returns results for automations that passed trigger matching.
        """
        results = []
        automations = await self.store.list_automations(AutomationStatus.ACTIVE)

        for automation in automations:
            if isinstance(automation.trigger, ManualTrigger) and event.source is not EventSource.MANUAL:
                continue

            top = self._top_level_context(automation, event, context.fork() if context else None)
            result = await self.fire(automation, event, top)
            if result.rejection_reason != "trigger":
                results.append(result)

        logger.info(
            "event_processed",
            source=event.source.value,
            table=event.table,
            automations=len(automations),
            fired=sum(1 for r in results if r.state is not FiringState.REJECTED),
        )
        return results

    async def run_nested(self, automation_id: str, context: ExecutionContext) -> ActionResult:
        """
        Execute another automation inside the current firing.

        The target runs against the current record, skips trigger matching
        and writes no log of its own. Its outcome becomes the calling
        action's result.
        """
        if self.config.track_automation_chain and automation_id in context.automation_chain:
            raise LoopPreventionError(AUTOMATION_LOOP_MESSAGE, automation_id=automation_id)
        if context.depth + 1 > self.config.max_automation_depth:
            raise LoopPreventionError(DEPTH_LIMIT_MESSAGE, automation_id=automation_id)

        if self.store is None:
            return ActionResult.fail("Automation store not configured")

        automation = await self.store.get_automation(automation_id)
        if automation is None:
            return ActionResult.fail("Automation not found")

        child = context.descend(automation_id)
        result = await self.fire(automation, None, child, check_trigger=False, write_log=False)
        context.adopt(child)

        data = {
            "automation_id": automation_id,
            "state": result.state.value,
            "action_results": [r.to_dict() for r in result.action_results],
        }
        if result.state is FiringState.PARTIAL:
            return ActionResult.fail(f"Automation '{automation.name}' failed: {result.error}", data=data)
        return ActionResult.ok(data)

    async def fire(
        self,
        automation,
        event: Optional[LifecycleEvent],
        context: Optional[ExecutionContext] = None,
        check_trigger: bool = True,
        write_log: bool = True,
    ) -> FiringResult:
        """
        Core firing sequence shared by automations and quick automations.

        `context` defaults to a fresh one built from the event.
        """
        start_time = time.monotonic()
        if context is None:
            context = ExecutionContext.from_event(event or LifecycleEvent.manual())

        if check_trigger and not self.matcher.matches(automation.trigger, event):
            return FiringResult(
                automation_id=automation.id,
                state=FiringState.REJECTED,
                rejection_reason="trigger",
            )

        if not self.evaluator.evaluate(automation.conditions, context.record):
            logger.debug("automation_conditions_not_met", automation_id=automation.id)
            return FiringResult(
                automation_id=automation.id,
                state=FiringState.REJECTED,
                rejection_reason="conditions",
                duration_ms=(time.monotonic() - start_time) * 1000,
            )

        input_record = context.record.to_dict() if context.record is not None else None

        action_results = []
        for action in automation.actions:
            action_results.append(await self._execute_action(automation, action, context))

        failed = [r for r in action_results if not r.success]
        result = FiringResult(
            automation_id=automation.id,
            state=FiringState.PARTIAL if failed else FiringState.SUCCESS,
            action_results=action_results,
            duration_ms=(time.monotonic() - start_time) * 1000,
        )

        if write_log:
            result.log = await self._write_log(automation, event, context, input_record, result)

        logger.info(
            "automation_completed",
            automation_id=automation.id,
            state=result.state.value,
            actions_executed=len(action_results),
            actions_failed=len(failed),
            depth=context.depth,
            duration_ms=round(result.duration_ms, 2),
        )
        return result

    def _top_level_context(
        self,
        automation,
        event: LifecycleEvent,
        context: Optional[ExecutionContext],
    ) -> ExecutionContext:
        context = context if context is not None else ExecutionContext.from_event(event)
        if automation.id not in context.automation_chain:
            context.automation_chain.append(automation.id)
        return context

    async def _execute_action(self, automation, action, context: ExecutionContext) -> ActionResult:
        """Catch-all boundary: any exception becomes a failed result."""
        try:
            return await self.dispatcher.execute(action, context)
        except DefinitionError:
            raise
        except Exception as e:
            logger.exception(
                "action_boundary_error",
                automation_id=automation.id,
                action_id=action.id,
            )
            return ActionResult(
                success=False,
                error=str(e) or "Failed to execute action",
                action_id=action.id,
                action_type=action.type,
            )

    async def _write_log(
        self,
        automation,
        event: Optional[LifecycleEvent],
        context: ExecutionContext,
        input_record: Optional[dict[str, Any]],
        result: FiringResult,
    ) -> AutomationLog:
        errors = [r.error or "Action failed" for r in result.failed_results]
        log = AutomationLog(
            automation_id=automation.id,
            status=LogStatus.ERROR if errors else LogStatus.SUCCESS,
            duration_ms=result.duration_ms,
            input={
                "trigger": automation.trigger.type,
                "event": event.to_dict() if event is not None else None,
                "record": input_record,
            },
            output={
                "state": result.state.value,
                "action_results": [r.to_dict() for r in result.action_results],
                "record": context.record.to_dict() if context.record is not None else None,
            },
            error="; ".join(errors) if errors else None,
        )

        if self.store is None:
            return log

        try:
            return await self.store.write_log(log)
        except Exception:
            logger.exception("automation_log_write_failed", automation_id=automation.id)
            return log
