"""
Automation & Page-Action Rule Engine

Executes user-defined automations of the form
"when X happens, and if Y holds, then do Z":
- Trigger matching against record lifecycle, schedule and manual events
- Field and boolean-group condition evaluation
- Ordered action execution with per-action failure isolation
- Loop prevention for automations that trigger other automations
- Page-scoped quick automations sharing the same machinery
"""

__version__ = "0.1.0"
