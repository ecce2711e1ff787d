"""Process-local log of assistant chat messages posted on a user's behalf."""

from __future__ import annotations

import threading
import uuid
from collections import defaultdict, deque
from datetime import datetime, timezone
from typing import Deque, Dict, List, Literal

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    type: Literal["ai", "system"] = "ai"
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ChatNotificationLog:
    """Keep the most recent messages per user so the client can poll them."""

    def __init__(self, *, max_messages: int = 50) -> None:
        self._messages: Dict[str, Deque[ChatMessage]] = defaultdict(
            lambda: deque(maxlen=max_messages)
        )
        self._lock = threading.Lock()

    def post(self, user_email: str, content: str) -> ChatMessage:
        message = ChatMessage(content=content)
        with self._lock:
            self._messages[user_email].append(message)
        return message

    def list_messages(self, user_email: str) -> List[ChatMessage]:
        with self._lock:
            return list(self._messages.get(user_email, ()))


__all__ = ["ChatMessage", "ChatNotificationLog"]
