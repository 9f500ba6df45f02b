"""Client port: navigation, URL opening and clipboard on the caller's side."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from ..core.errors import ClientUnavailableError


@dataclass
class ClientEffect:
    """A client-side operation for the calling UI to perform."""
    kind: str   # navigate, open_url, copy_to_clipboard
    value: str

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "value": self.value}


class ClientPort(ABC):
    """Best-effort client operations. Raise ClientUnavailableError when unsupported."""

    @abstractmethod
    async def navigate(self, path: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def open_url(self, url: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def copy_to_clipboard(self, text: str) -> None:
        raise NotImplementedError


class RecordingClient(ClientPort):
    """
    Collects client effects instead of performing them.

    The engine runs server-side; the effects are handed back to the UI in the
    response of the request that triggered them.
    """

    def __init__(self, clipboard_available: bool = True, navigation_available: bool = True):
        self.clipboard_available = clipboard_available
        self.navigation_available = navigation_available
        self.effects: list[ClientEffect] = []

    async def navigate(self, path: str) -> None:
        if not self.navigation_available:
            raise ClientUnavailableError("Navigation not available", capability="navigate")
        self.effects.append(ClientEffect("navigate", path))

    async def open_url(self, url: str) -> None:
        if not self.navigation_available:
            raise ClientUnavailableError("Navigation not available", capability="open_url")
        self.effects.append(ClientEffect("open_url", url))

    async def copy_to_clipboard(self, text: str) -> None:
        if not self.clipboard_available:
            raise ClientUnavailableError("Clipboard API not available", capability="clipboard")
        self.effects.append(ClientEffect("copy_to_clipboard", text))

    def drain(self) -> list[ClientEffect]:
        """Return and clear the collected effects."""
        effects, self.effects = self.effects, []
        return effects
