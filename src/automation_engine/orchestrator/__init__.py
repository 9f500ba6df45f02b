"""Time-driven firing of automations."""

from .scheduler import AutomationScheduler, is_date_approaching, is_schedule_due

__all__ = ["AutomationScheduler", "is_date_approaching", "is_schedule_due"]
