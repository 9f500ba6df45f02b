"""Condition evaluation for automations."""

import operator
from collections.abc import Mapping
from typing import Any, Callable, Optional, Sequence, Union

from ..core.errors import DefinitionError
from .models import (
    ConditionOperator,
    FieldCondition,
    LogicCondition,
    LogicOperator,
)
from .record import FieldValue, Record


ConditionLike = Union[FieldCondition, LogicCondition]


def _numeric(compare: Callable[[float, float], bool]) -> Callable[[FieldValue, Any], bool]:
    """Wrap a numeric comparison. Non-numeric sides evaluate to False."""

    def check(value: FieldValue, expected: Any) -> bool:
        left = value.as_number()
        right = FieldValue.from_raw(expected).as_number()
        if left is None or right is None:
            return False
        return compare(left, right)

    return check


class ConditionEvaluator:
    """
    Evaluates automation conditions against a record.

    Supports:
    - Field comparisons (equals, not_equals, contains, greater_than, less_than)
    - Emptiness checks (is_empty, is_not_empty), which ignore any value
    - Logic groups (and/or) nested to any depth

    Pure: no I/O, no state, same answer for the same inputs.
    """

    OPERATORS: dict[ConditionOperator, Callable[[FieldValue, Any], bool]] = {
        ConditionOperator.EQUALS: lambda v, e: v.equals(e),
        ConditionOperator.NOT_EQUALS: lambda v, e: not v.equals(e),
        ConditionOperator.CONTAINS: lambda v, e: FieldValue.from_raw(e).as_text() in v.as_text(),
        ConditionOperator.GREATER_THAN: _numeric(operator.gt),
        ConditionOperator.LESS_THAN: _numeric(operator.lt),
        ConditionOperator.IS_EMPTY: lambda v, _: v.is_empty(),
        ConditionOperator.IS_NOT_EMPTY: lambda v, _: not v.is_empty(),
    }

    def evaluate(
        self,
        conditions: Union[ConditionLike, Sequence[ConditionLike]],
        record: Optional[Union[Record, Mapping[str, Any]]],
    ) -> bool:
        """
        Evaluate one condition or a list of conditions (AND).

        An empty list is vacuously true.
        """
        record = Record.from_dict(record)

        if isinstance(conditions, (FieldCondition, LogicCondition)):
            return self._evaluate_condition(conditions, record)

        return all(self._evaluate_condition(c, record) for c in conditions)

    def _evaluate_condition(self, condition: ConditionLike, record: Record) -> bool:
        if isinstance(condition, LogicCondition):
            children = (self._evaluate_condition(c, record) for c in condition.conditions)
            if condition.operator is LogicOperator.AND:
                return all(children)
            return any(children)

        if isinstance(condition, FieldCondition):
            op_func = self.OPERATORS.get(condition.operator)
            if op_func is None:
                raise DefinitionError(f"Unknown operator: {condition.operator}")
            return op_func(record.value(condition.field_key), condition.value)

        raise DefinitionError(f"Unknown condition: {condition!r}")


_default_evaluator = ConditionEvaluator()


def evaluate_conditions(
    conditions: Union[ConditionLike, Sequence[ConditionLike]],
    record: Optional[Union[Record, Mapping[str, Any]]],
) -> bool:
    """Module-level shortcut using a shared evaluator."""
    return _default_evaluator.evaluate(conditions, record)
