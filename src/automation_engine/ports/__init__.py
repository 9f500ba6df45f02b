"""Collaborator boundaries: datastore, outbound transport, client side."""

from .data import DataPort, InMemoryDataPort, SqliteDataPort
from .transport import HttpResponse, HttpxTransport, Transport
from .client import ClientEffect, ClientPort, RecordingClient

__all__ = [
    "DataPort",
    "InMemoryDataPort",
    "SqliteDataPort",
    "HttpResponse",
    "HttpxTransport",
    "Transport",
    "ClientEffect",
    "ClientPort",
    "RecordingClient",
]
