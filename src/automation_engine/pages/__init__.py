"""Page-scoped actions and quick automations."""

from .models import PageConfig, parse_page
from .quick import QuickAutomationRunner, execute_page_action, run_page_automations

__all__ = [
    "PageConfig",
    "parse_page",
    "QuickAutomationRunner",
    "execute_page_action",
    "run_page_automations",
]
