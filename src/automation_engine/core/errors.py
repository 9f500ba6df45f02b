"""Engine error definitions."""

from typing import Optional, Any
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels for classification."""
    LOW = "low"           # Skipped or rejected work, nothing to fix
    MEDIUM = "medium"     # One action failed, siblings unaffected
    HIGH = "high"         # Definition or configuration is broken
    CRITICAL = "critical" # Engine cannot continue


class ErrorCategory(Enum):
    """Error categories for routing and handling."""
    TRANSIENT = "transient"       # Network, timeout - will likely resolve
    PERMANENT = "permanent"       # Bad definition - won't resolve on its own
    EXTERNAL = "external"         # Third-party service issue
    VALIDATION = "validation"     # Input/definition validation failure
    SAFETY = "safety"             # Loop prevention triggered


class EngineError(Exception):
    """Base exception for all engine errors."""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.TRANSIENT,
        context: Optional[dict[str, Any]] = None,
        retryable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.severity = severity
        self.category = category
        self.context = context or {}
        self.retryable = retryable

    def to_dict(self) -> dict[str, Any]:
        """Serialize error for logging/storage."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "context": self.context,
            "retryable": self.retryable,
        }


class ConfigError(EngineError):
    """Configuration loading or validation error."""

    def __init__(self, message: str, config_path: Optional[str] = None, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        kwargs.setdefault("category", ErrorCategory.PERMANENT)
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)
        self.context["config_path"] = config_path


class DefinitionError(EngineError):
    """
    Malformed automation, condition or action definition.

    Raised for shapes that violate the data model. These indicate a bug in
    the caller and are allowed to propagate out of the runner.
    """

    def __init__(self, message: str, automation_id: Optional[str] = None, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        kwargs.setdefault("category", ErrorCategory.PERMANENT)
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)
        self.context["automation_id"] = automation_id


class LoopPreventionError(EngineError):
    """An action or automation tried to re-enter itself within one firing."""

    def __init__(
        self,
        message: str,
        action_id: Optional[str] = None,
        automation_id: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault("severity", ErrorSeverity.LOW)
        kwargs.setdefault("category", ErrorCategory.SAFETY)
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)
        self.context["action_id"] = action_id
        self.context["automation_id"] = automation_id


class TransportError(EngineError):
    """Outbound HTTP or email delivery failed."""

    def __init__(self, message: str, url: Optional[str] = None, **kwargs):
        kwargs.setdefault("category", ErrorCategory.EXTERNAL)
        super().__init__(message, **kwargs)
        self.context["url"] = url


class NetworkError(TransportError):
    """The remote endpoint could not be reached at all."""

    def __init__(self, message: str, url: Optional[str] = None, **kwargs):
        kwargs.setdefault("category", ErrorCategory.TRANSIENT)
        super().__init__(message, url=url, **kwargs)


class ClientUnavailableError(EngineError):
    """A client-side capability (clipboard, navigation) is not available."""

    def __init__(self, message: str, capability: Optional[str] = None, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.LOW)
        kwargs.setdefault("category", ErrorCategory.EXTERNAL)
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)
        self.context["capability"] = capability
