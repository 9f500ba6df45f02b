"""Page configuration: button actions and page-scoped quick automations."""

from typing import Any, Optional

from pydantic import Field, ValidationError

from ..core.errors import DefinitionError
from ..rules.models import Action, DefinitionModel, QuickAutomation


class PageConfig(DefinitionModel):
    """A page bound to one table, with its buttons and quick automations."""
    id: str = Field(..., min_length=1)
    name: str = ""
    table: Optional[str] = None
    actions: list[Action] = Field(default_factory=list)
    quick_automations: list[QuickAutomation] = Field(default_factory=list)

    def get_action(self, action_id: str):
        for action in self.actions:
            if action.id == action_id:
                return action
        return None


def parse_page(data: dict[str, Any]) -> PageConfig:
    try:
        return PageConfig.model_validate(data)
    except ValidationError as e:
        raise DefinitionError(f"Invalid page definition: {e}")
