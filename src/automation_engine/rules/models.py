"""Automation definition models: triggers, conditions, actions."""

import time
import uuid
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from ..core.errors import DefinitionError


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class DefinitionModel(BaseModel):
    """Base for definition models. Accepts snake_case and camelCase keys."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ==================== Conditions ====================

class ConditionOperator(str, Enum):
    """Field comparison operators."""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"


VALUELESS_OPERATORS = frozenset({ConditionOperator.IS_EMPTY, ConditionOperator.IS_NOT_EMPTY})


class LogicOperator(str, Enum):
    AND = "and"
    OR = "or"


class FieldCondition(DefinitionModel):
    """Compare one record field against a value."""
    type: Literal["field"] = "field"
    field_key: str = Field(..., min_length=1)
    operator: ConditionOperator
    value: Any = None

    @model_validator(mode="after")
    def _require_comparison_value(self) -> "FieldCondition":
        if self.operator not in VALUELESS_OPERATORS and "value" not in self.model_fields_set:
            raise ValueError(f"Operator '{self.operator.value}' requires a comparison value")
        return self


class LogicCondition(DefinitionModel):
    """Combine nested conditions with AND/OR."""
    type: Literal["logic"] = "logic"
    operator: LogicOperator
    conditions: list["Condition"] = Field(default_factory=list)

    @field_validator("operator", mode="before")
    @classmethod
    def _lowercase_operator(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value


Condition = Annotated[Union[FieldCondition, LogicCondition], Field(discriminator="type")]

LogicCondition.model_rebuild()


# ==================== Triggers ====================

class ScheduleFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class ScheduleTrigger(DefinitionModel):
    """Recurring schedule. Due-ness is computed by the scheduler."""
    type: Literal["schedule"] = "schedule"
    frequency: ScheduleFrequency
    time: Optional[str] = Field(default=None, pattern=r"^\d{1,2}:\d{2}$")  # HH:MM
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)  # 0 = Sunday
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    cron: Optional[str] = None


class RecordCreatedTrigger(DefinitionModel):
    type: Literal["record_created"] = "record_created"
    table: str


class FieldFilterOperator(str, Enum):
    CHANGED = "changed"
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"


class FieldFilter(DefinitionModel):
    """Narrows an update trigger to edits touching one field."""
    field_key: str = Field(..., min_length=1)
    operator: FieldFilterOperator = FieldFilterOperator.CHANGED
    value: Any = None

    def passes(self, old_record: dict[str, Any], new_record: dict[str, Any]) -> bool:
        old_value = old_record.get(self.field_key)
        new_value = new_record.get(self.field_key)
        if self.operator is FieldFilterOperator.EQUALS:
            return new_value == self.value
        if self.operator is FieldFilterOperator.NOT_EQUALS:
            return new_value != self.value
        return old_value != new_value


class RecordUpdatedTrigger(DefinitionModel):
    """Fires on any update, or only when at least one field filter passes."""
    type: Literal["record_updated"] = "record_updated"
    table: str
    field_filters: list[FieldFilter] = Field(default_factory=list)


class FieldMatchTrigger(DefinitionModel):
    """Fires when a record in `table` satisfies an implicit field condition."""
    type: Literal["field_match"] = "field_match"
    table: str
    field_key: str = Field(..., min_length=1)
    operator: ConditionOperator
    value: Any = None

    @model_validator(mode="after")
    def _require_comparison_value(self) -> "FieldMatchTrigger":
        if self.operator not in VALUELESS_OPERATORS and "value" not in self.model_fields_set:
            raise ValueError(f"Operator '{self.operator.value}' requires a comparison value")
        return self

    @property
    def condition(self) -> FieldCondition:
        data = {"field_key": self.field_key, "operator": self.operator}
        if "value" in self.model_fields_set:
            data["value"] = self.value
        return FieldCondition(**data)


class DateApproachingTrigger(DefinitionModel):
    type: Literal["date_approaching"] = "date_approaching"
    table: str
    date_field_key: str = Field(..., min_length=1)
    days_before: int = Field(default=0, ge=0)


class ManualTrigger(DefinitionModel):
    type: Literal["manual"] = "manual"


Trigger = Annotated[
    Union[
        ScheduleTrigger,
        RecordCreatedTrigger,
        RecordUpdatedTrigger,
        FieldMatchTrigger,
        DateApproachingTrigger,
        ManualTrigger,
    ],
    Field(discriminator="type"),
]

# Page-scoped quick automations only react to record lifecycle and clicks
QuickTrigger = Annotated[
    Union[RecordCreatedTrigger, RecordUpdatedTrigger, FieldMatchTrigger, ManualTrigger],
    Field(discriminator="type"),
]


# ==================== Actions ====================

class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class ActionBase(DefinitionModel):
    """
    Fields shared by every action.

    `id` is used only for re-entrancy tracking, never to address records.
    Kind-specific fields are optional here; executors check them at run time.
    """
    id: str = Field(default_factory=lambda: _new_id("action"))
    condition: Optional[Condition] = None


class UpdateRecordAction(ActionBase):
    type: Literal["update_record"] = "update_record"
    table: Optional[str] = None
    updates: Optional[dict[str, Any]] = None
    record_id: Optional[str] = None


class CreateRecordAction(ActionBase):
    type: Literal["create_record"] = "create_record"
    table: Optional[str] = None
    updates: Optional[dict[str, Any]] = None


class DeleteRecordAction(ActionBase):
    type: Literal["delete_record"] = "delete_record"
    table: Optional[str] = None
    record_id: Optional[str] = None


class DuplicateRecordAction(ActionBase):
    type: Literal["duplicate_record"] = "duplicate_record"
    table: Optional[str] = None
    record_id: Optional[str] = None


class NavigateToPageAction(ActionBase):
    type: Literal["navigate_to_page"] = "navigate_to_page"
    page_id: Optional[str] = None


class OpenRecordAction(ActionBase):
    type: Literal["open_record"] = "open_record"
    table: Optional[str] = None
    record_id: Optional[str] = None


class SendEmailAction(ActionBase):
    type: Literal["send_email"] = "send_email"
    to: Optional[Union[str, list[str]]] = None
    subject: Optional[str] = None
    body: Optional[str] = None


class WebhookAction(ActionBase):
    type: Literal["webhook"] = "webhook"
    url: Optional[str] = None
    method: HttpMethod = HttpMethod.POST
    body: Any = None
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("method", mode="before")
    @classmethod
    def _uppercase_method(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class RunAutomationAction(ActionBase):
    type: Literal["run_automation"] = "run_automation"
    automation_id: Optional[str] = None


class OpenUrlAction(ActionBase):
    type: Literal["open_url"] = "open_url"
    url: Optional[str] = None


class SetFieldValueAction(ActionBase):
    type: Literal["set_field_value"] = "set_field_value"
    table: Optional[str] = None
    field_key: Optional[str] = None
    field_value: Any = None
    record_id: Optional[str] = None

    @property
    def has_field_value(self) -> bool:
        return "field_value" in self.model_fields_set


class CopyToClipboardAction(ActionBase):
    type: Literal["copy_to_clipboard"] = "copy_to_clipboard"
    field_key: Optional[str] = None


ACTION_TYPES: tuple[type[ActionBase], ...] = (
    UpdateRecordAction,
    CreateRecordAction,
    DeleteRecordAction,
    DuplicateRecordAction,
    NavigateToPageAction,
    OpenRecordAction,
    SendEmailAction,
    WebhookAction,
    RunAutomationAction,
    OpenUrlAction,
    SetFieldValueAction,
    CopyToClipboardAction,
)

Action = Annotated[
    Union[
        UpdateRecordAction,
        CreateRecordAction,
        DeleteRecordAction,
        DuplicateRecordAction,
        NavigateToPageAction,
        OpenRecordAction,
        SendEmailAction,
        WebhookAction,
        RunAutomationAction,
        OpenUrlAction,
        SetFieldValueAction,
        CopyToClipboardAction,
    ],
    Field(discriminator="type"),
]


# ==================== Automations ====================

class AutomationStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"


class Automation(DefinitionModel):
    """A global automation: one trigger, optional conditions, ordered actions."""
    id: str = Field(default_factory=lambda: _new_id("auto"))
    name: str = Field(..., min_length=1)
    description: str = ""
    status: AutomationStatus = AutomationStatus.ACTIVE
    trigger: Trigger
    conditions: list[Condition] = Field(default_factory=list)
    actions: list[Action] = Field(..., min_length=1)

    @property
    def is_active(self) -> bool:
        return self.status is AutomationStatus.ACTIVE


class QuickAutomation(DefinitionModel):
    """A page-scoped automation. Same shape as Automation minus status."""
    id: str = Field(default_factory=lambda: _new_id("quick"))
    name: str = Field(..., min_length=1)
    trigger: QuickTrigger
    conditions: list[Condition] = Field(default_factory=list)
    actions: list[Action] = Field(..., min_length=1)


_ACTION_ADAPTER = TypeAdapter(Action)
_CONDITION_ADAPTER = TypeAdapter(Condition)


def parse_automation(data: dict[str, Any]) -> Automation:
    """Build an Automation from a raw mapping, raising DefinitionError on bad shape."""
    try:
        return Automation.model_validate(data)
    except ValidationError as e:
        raise DefinitionError(
            f"Invalid automation definition: {e}",
            automation_id=data.get("id") if isinstance(data, dict) else None,
        )


def parse_quick_automation(data: dict[str, Any]) -> QuickAutomation:
    try:
        return QuickAutomation.model_validate(data)
    except ValidationError as e:
        raise DefinitionError(
            f"Invalid quick automation definition: {e}",
            automation_id=data.get("id") if isinstance(data, dict) else None,
        )


def parse_action(data: dict[str, Any]) -> ActionBase:
    try:
        return _ACTION_ADAPTER.validate_python(data)
    except ValidationError as e:
        raise DefinitionError(f"Invalid action definition: {e}")


def parse_condition(data: dict[str, Any]) -> Union[FieldCondition, LogicCondition]:
    try:
        return _CONDITION_ADAPTER.validate_python(data)
    except ValidationError as e:
        raise DefinitionError(f"Invalid condition definition: {e}")


# ==================== Run logs ====================

class LogStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class AutomationLog:
    """Append-only record of one top-level firing."""
    automation_id: str
    status: LogStatus
    duration_ms: float
    input: dict[str, Any] = field(default_factory=dict)
    output: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    timestamp: float = field(default_factory=time.time)
    id: Optional[int] = None

    def __post_init__(self):
        if (self.status is LogStatus.ERROR) != (self.error is not None):
            raise ValueError("AutomationLog.error must be set exactly when status is 'error'")

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data
