"""Pre-save checks for automation definitions."""

from dataclasses import dataclass, field
from typing import Any, Union

from ..core.errors import DefinitionError
from .models import (
    Automation,
    CopyToClipboardAction,
    CreateRecordAction,
    DateApproachingTrigger,
    DeleteRecordAction,
    DuplicateRecordAction,
    FieldMatchTrigger,
    NavigateToPageAction,
    OpenRecordAction,
    OpenUrlAction,
    RecordCreatedTrigger,
    RecordUpdatedTrigger,
    RunAutomationAction,
    ScheduleFrequency,
    ScheduleTrigger,
    SendEmailAction,
    SetFieldValueAction,
    UpdateRecordAction,
    WebhookAction,
    parse_automation,
)


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "errors": self.errors, "warnings": self.warnings}


def _blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


def _validate_trigger(trigger, errors: list[str], warnings: list[str]) -> None:
    if isinstance(trigger, ScheduleTrigger):
        timed = (ScheduleFrequency.DAILY, ScheduleFrequency.WEEKLY, ScheduleFrequency.MONTHLY)
        if trigger.frequency in timed and not trigger.time:
            errors.append(f"{trigger.frequency.value} schedule must include time")
        if trigger.frequency is ScheduleFrequency.WEEKLY and trigger.day_of_week is None:
            warnings.append("Weekly schedule should specify day of week")
        if trigger.frequency is ScheduleFrequency.MONTHLY and trigger.day_of_month is None:
            warnings.append("Monthly schedule should specify day of month")
        if trigger.frequency is ScheduleFrequency.CUSTOM and not trigger.cron:
            errors.append("custom schedule must include a cron expression")

    elif isinstance(trigger, (RecordCreatedTrigger, RecordUpdatedTrigger, FieldMatchTrigger, DateApproachingTrigger)):
        if _blank(trigger.table):
            errors.append(f"{trigger.type} trigger must include table")


def _validate_action(index: int, action, errors: list[str], warnings: list[str]) -> None:
    prefix = f"Action {index + 1} ({action.type})"

    def require(value: Any, name: str) -> None:
        if _blank(value):
            errors.append(f"{prefix}: '{name}' field is required")

    if isinstance(action, UpdateRecordAction):
        require(action.table, "table")
        if not action.updates:
            errors.append(f"{prefix}: 'updates' must contain at least one field")
    elif isinstance(action, CreateRecordAction):
        require(action.table, "table")
        if not action.updates:
            warnings.append(f"{prefix}: 'updates' is empty. Record will be created with only system fields.")
    elif isinstance(action, (DeleteRecordAction, DuplicateRecordAction)):
        require(action.table, "table")
        if not action.record_id:
            warnings.append(f"{prefix}: 'record_id' not specified. Will use trigger context if available.")
    elif isinstance(action, OpenRecordAction):
        require(action.table, "table")
    elif isinstance(action, NavigateToPageAction):
        require(action.page_id, "page_id")
    elif isinstance(action, SendEmailAction):
        require(action.to, "to")
        require(action.subject, "subject")
        require(action.body, "body")
    elif isinstance(action, (WebhookAction, OpenUrlAction)):
        require(action.url, "url")
    elif isinstance(action, RunAutomationAction):
        require(action.automation_id, "automation_id")
    elif isinstance(action, SetFieldValueAction):
        require(action.table, "table")
        require(action.field_key, "field_key")
        if not action.has_field_value:
            errors.append(f"{prefix}: 'field_value' is required")
    elif isinstance(action, CopyToClipboardAction):
        require(action.field_key, "field_key")


def validate_automation(automation: Union[Automation, dict[str, Any]]) -> ValidationResult:
    """
    Report definition problems before an automation is saved.

    Shape errors (unknown trigger or action type, missing name) come from the
    model; per-kind required fields are checked here since executors only
    enforce them at run time.
    """
    if not isinstance(automation, Automation):
        try:
            automation = parse_automation(automation)
        except DefinitionError as e:
            return ValidationResult(valid=False, errors=[e.message])

    errors: list[str] = []
    warnings: list[str] = []

    if _blank(automation.name):
        errors.append("Automation name is required")

    _validate_trigger(automation.trigger, errors, warnings)

    for index, action in enumerate(automation.actions):
        _validate_action(index, action, errors, warnings)

    unfiltered = isinstance(automation.trigger, RecordCreatedTrigger) or (
        isinstance(automation.trigger, RecordUpdatedTrigger) and not automation.trigger.field_filters
    )
    if not automation.conditions and unfiltered:
        warnings.append("No conditions specified. Automation will run for all records matching the trigger.")

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)
