"""Core engine components."""

from .config import ConfigLoader, EngineConfig
from .state import AutomationStore, InMemoryAutomationStore
from .errors import (
    EngineError,
    ConfigError,
    DefinitionError,
    LoopPreventionError,
    TransportError,
    NetworkError,
    ClientUnavailableError,
)

__all__ = [
    "ConfigLoader",
    "EngineConfig",
    "AutomationStore",
    "InMemoryAutomationStore",
    "EngineError",
    "ConfigError",
    "DefinitionError",
    "LoopPreventionError",
    "TransportError",
    "NetworkError",
    "ClientUnavailableError",
]
