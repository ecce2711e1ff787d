"""
Error taxonomy shared by the OAuth flow, the connector bridge and the chat
dispatcher.

"Not found" conditions are never raised; they are returned as data
(``None``, ``False`` or a ``not_found`` status).
"""

from __future__ import annotations


class SmartPlanError(Exception):
    """Base class for every error the service raises on purpose."""


class ValidationError(SmartPlanError):
    """A required request field or argument is missing or empty."""


class CallbackError(SmartPlanError):
    """Base class for failures inside the OAuth callback flow."""


class MalformedCallback(CallbackError):
    """The redirect URL lacks ``code``/``state`` or carries an invalid state."""


class TokenExchangeFailed(CallbackError):
    """The token endpoint rejected the grant or could not be reached."""


class IntegrationSetupFailed(SmartPlanError):
    """The tool-connector platform could not provision the user's entity."""


class UpstreamServiceError(SmartPlanError):
    """The LLM or the tool-connector platform failed while serving a request."""


__all__ = [
    "CallbackError",
    "IntegrationSetupFailed",
    "MalformedCallback",
    "SmartPlanError",
    "TokenExchangeFailed",
    "UpstreamServiceError",
    "ValidationError",
]
