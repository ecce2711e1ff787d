"""Expose constructed client wrappers."""

from .composio import (
    ComposioClient,
    ConnectorAccount,
    SimulatedToolConnector,
    ToolConnector,
    ToolConnectorError,
)
from .gemini import GeminiClient, GeminiModelError
from .google_auth import GoogleOAuthClient, OAuthStateEncoder, TokenGrant
from .record_store import InMemoryStore, RecordStore, SQLiteStore

__all__ = [
    "ComposioClient",
    "ConnectorAccount",
    "GeminiClient",
    "GeminiModelError",
    "GoogleOAuthClient",
    "InMemoryStore",
    "OAuthStateEncoder",
    "RecordStore",
    "SQLiteStore",
    "SimulatedToolConnector",
    "TokenGrant",
    "ToolConnector",
    "ToolConnectorError",
]
