"""Schemas for the chat dispatch endpoint."""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import Field

from .base import CamelModel


class CalendarEventContext(CamelModel):
    """An event the client already shows on screen."""

    title: str = ""
    date: Optional[str] = Field(None, description="Event date as YYYY-MM-DD.")
    start_time: Optional[str] = None


class ChatPreferences(CamelModel):
    focus_areas: List[str] = Field(default_factory=list)


class ChatContext(CamelModel):
    current_date: Optional[str] = Field(
        None, description="ISO-8601 timestamp of the client's current day."
    )
    events: List[CalendarEventContext] = Field(default_factory=list)
    preferences: Optional[ChatPreferences] = None


class SendMessageRequest(CamelModel):
    """Required fields are checked in the route so clients get a 400 with a message."""

    message: Optional[str] = None
    user_email: Optional[str] = None
    context: Optional[ChatContext] = None


class SendMessageResponse(CamelModel):
    success: bool = True
    message: str
    user_email: str
    needs_connection: bool = False
    redirect_url: Optional[str] = None
    tool_calls: Optional[List[dict[str, Any]]] = None
    tool_results: Optional[List[dict[str, Any]]] = None


__all__ = [
    "CalendarEventContext",
    "ChatContext",
    "ChatPreferences",
    "SendMessageRequest",
    "SendMessageResponse",
]
