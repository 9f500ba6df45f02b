"""Rules engine module."""

from .engine import AutomationRunner, FiringResult, FiringState
from .evaluator import ConditionEvaluator
from .triggers import TriggerMatcher
from .actions import ActionDispatcher, ActionResult
from .context import ExecutionContext, LifecycleEvent
from .validation import ValidationResult, validate_automation

__all__ = [
    "AutomationRunner",
    "FiringResult",
    "FiringState",
    "ConditionEvaluator",
    "TriggerMatcher",
    "ActionDispatcher",
    "ActionResult",
    "ExecutionContext",
    "LifecycleEvent",
    "ValidationResult",
    "validate_automation",
]
