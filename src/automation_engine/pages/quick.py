"""Quick automations and button actions on pages."""

import asyncio
from typing import Optional, Sequence

import structlog

from ..rules.actions import ActionResult
from ..rules.context import EventSource, ExecutionContext, LifecycleEvent
from ..rules.engine import AutomationRunner, FiringResult, FiringState
from ..rules.models import ActionBase, ManualTrigger, QuickAutomation
from .models import PageConfig


logger = structlog.get_logger()


class QuickAutomationRunner:
    """
    Runs a page's quick automations for one page event.

    All matching quick automations run concurrently. They share a single
    in-flight set, so one action id can only be in flight once across the
    whole batch. Actions inside each quick automation still run in order.
    Quick automations are owned by the page and write no run logs.
    """

    def __init__(self, runner: AutomationRunner):
        self.runner = runner

    async def run_page_automations(
        self,
        automations: Sequence[QuickAutomation],
        event: LifecycleEvent,
        context: Optional[ExecutionContext] = None,
    ) -> list[FiringResult]:
        """Fan out over the quick automations. Returns results of those whose trigger matched."""
        base = context if context is not None else ExecutionContext.from_event(event)

        candidates = [
            automation for automation in automations
            if event.source is EventSource.MANUAL or not isinstance(automation.trigger, ManualTrigger)
        ]
        if not candidates:
            return []

        results = await asyncio.gather(*(
            self.runner.fire(automation, event, base.fork(), write_log=False)
            for automation in candidates
        ))

        fired = [r for r in results if r.rejection_reason != "trigger"]
        logger.info(
            "page_automations_processed",
            candidates=len(candidates),
            fired=sum(1 for r in fired if r.state is not FiringState.REJECTED),
            failed=sum(1 for r in fired if r.state is FiringState.PARTIAL),
        )
        return fired

    async def handle_page_event(
        self,
        page: PageConfig,
        event: LifecycleEvent,
        context: Optional[ExecutionContext] = None,
        automation_id: Optional[str] = None,
    ) -> list[FiringResult]:
        """
        Route a page event to the page's quick automations.

        `automation_id` narrows a manual event to the quick automation whose
        button was clicked.
        """
        if event.table is None:
            event.table = page.table

        automations = page.quick_automations
        if automation_id is not None:
            automations = [a for a in automations if a.id == automation_id]
        return await self.run_page_automations(automations, event, context)

    async def execute_page_action(
        self,
        action: ActionBase,
        context: Optional[ExecutionContext] = None,
    ) -> ActionResult:
        """Run one page button action through the dispatcher."""
        context = context if context is not None else ExecutionContext()
        return await self.runner.dispatcher.execute(action, context)


async def run_page_automations(
    runner: AutomationRunner,
    automations: Sequence[QuickAutomation],
    event: LifecycleEvent,
    context: Optional[ExecutionContext] = None,
) -> list[FiringResult]:
    """Shortcut for a single batch."""
    return await QuickAutomationRunner(runner).run_page_automations(automations, event, context)


async def execute_page_action(
    runner: AutomationRunner,
    action: ActionBase,
    context: Optional[ExecutionContext] = None,
) -> ActionResult:
    return await QuickAutomationRunner(runner).execute_page_action(action, context)
