"""User-facing wording for action and firing errors."""

from dataclasses import dataclass, asdict
from typing import Any, Optional


@dataclass
class FriendlyError:
    """A readable error with a hint on how to fix it."""
    message: str
    suggestion: Optional[str] = None
    code: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# (all keywords that must appear, message, suggestion, code); first match wins
_RULES: list[tuple[tuple[str, ...], str, str, str]] = [
    (
        ("loop prevention",),
        "This automation tried to run itself again",
        "Check run_automation actions for automations that call each other in a cycle",
        "LOOP_PREVENTED",
    ),
    (
        ("condition not met",),
        "The action was skipped because its condition was not met",
        "Review the action's condition if you expected it to run",
        "CONDITION_NOT_MET",
    ),
    (
        ("missing table",),
        "Please select a table for this action",
        "Make sure you've selected a table in the action configuration",
        "MISSING_TABLE",
    ),
    (
        ("missing record id",),
        "Please specify which record to update or delete",
        "Use the triggering record, or enter a specific record ID",
        "MISSING_RECORD_ID",
    ),
    (
        ("automation", "not found"),
        "The automation to run could not be found",
        "It may have been deleted. Pick a different automation in the action",
        "AUTOMATION_NOT_FOUND",
    ),
    (
        ("record", "not found"),
        "The record could not be found",
        "The record may have been deleted. Check that the record ID is correct",
        "RECORD_NOT_FOUND",
    ),
    (
        ("email",),
        "The email could not be sent",
        "Check the recipient, subject and body of the email action",
        "EMAIL_FAILED",
    ),
    (
        ("webhook",),
        "The webhook call failed",
        "Check that the webhook URL is correct and the receiving service is available",
        "WEBHOOK_FAILED",
    ),
    (
        ("timed out",),
        "The operation took too long to complete",
        "The receiving service took too long to respond. Try again later",
        "TIMEOUT",
    ),
    (
        ("not available",),
        "This action is not supported here",
        "Clipboard and navigation actions only work from the app",
        "CLIENT_UNAVAILABLE",
    ),
    (
        ("missing",),
        "A required field is missing",
        "Check that all required fields have values",
        "MISSING_FIELD",
    ),
    (
        ("permission",),
        "You don't have permission to perform this action",
        "Contact your administrator to request access",
        "PERMISSION_DENIED",
    ),
]


def friendly_error(error: Any, field_name: Optional[str] = None) -> FriendlyError:
    """Map a raw error (string or exception) to a FriendlyError."""
    message = getattr(error, "message", None) or str(error or "") or "An unexpected error occurred"
    lower = message.lower()

    for keywords, friendly, suggestion, code in _RULES:
        if all(k in lower for k in keywords):
            if code == "MISSING_FIELD" and field_name:
                suggestion = f'Please provide a value for the "{field_name}" field'
            return FriendlyError(friendly, suggestion, code)

    return FriendlyError(message, "If the problem persists, check the automation run history", "UNKNOWN")
