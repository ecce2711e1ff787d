"""Chat dispatch: connection gate, tool catalog and the two-pass LLM pipeline.

Stage one (``act``) lets the model plan tool calls and runs them through the
connector, producing a ``ToolCallTranscript``. Stage two (``summarize``) turns
that transcript into a conversational reply. Each stage only needs an object
with the matching ``GeminiClient`` method, so either can be tested with a stub.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from textwrap import dedent
from typing import Any, List, Optional, Protocol

from smartplan.clients.composio import ToolConnector
from smartplan.core.errors import ValidationError
from smartplan.models.connection import ConnectionRecordStatus, ConnectionState, ConnectionStatus
from smartplan.models.tools import ToolBinding, ToolCallTranscript, ToolPlan, ToolResult
from smartplan.schemas.chat import ChatContext
from smartplan.services.connection_registry import ConnectionRegistry
from smartplan.services.integration_bridge import IntegrationBridge, entity_id_for

logger = logging.getLogger(__name__)


class LLMClient(Protocol):
    async def generate_text(self, prompt: str) -> str: ...

    async def plan_tool_calls(self, prompt: str, tools: list[ToolBinding]) -> ToolPlan: ...


@dataclass
class AssistantReply:
    message: str
    user_email: str
    needs_connection: bool = False
    redirect_url: Optional[str] = None
    transcript: Optional[ToolCallTranscript] = None
    tool_calls: List[dict[str, Any]] = field(default_factory=list)
    tool_results: List[dict[str, Any]] = field(default_factory=list)


_CONNECTION_REPLIES = {
    ConnectionState.NOT_FOUND: (
        "Hi! To manage your Google Calendar with AI, I need to connect to your "
        "account first. Please use the \"Setup Connection\" button to authenticate "
        "with Google Calendar."
    ),
    ConnectionState.PENDING: (
        "Hi! Your Google Calendar connection is pending. Please complete the "
        "authentication process using the provided link."
    ),
    ConnectionState.ERROR: (
        "There's an issue with your Google Calendar connection: {reason}. "
        "Please try reconnecting."
    ),
}


_CAPABILITIES = dedent(
    """\
    You can:
    - Create calendar events
    - List existing events
    - Update events
    - Delete events
    - Quick add events using natural language

    If they want to schedule something, use the appropriate calendar tools.
    When creating events, always include a clear title, a specific date and
    time, a duration or end time, and any relevant description.

    Be conversational and friendly in your responses."""
)


def build_calendar_prompt(
    *, user_email: str, message: str, context: ChatContext | None = None
) -> str:
    """Compose the single tool-enabled prompt sent on the act pass."""
    facts: list[str] = []
    if context is not None:
        if context.current_date:
            facts.append(f"Current date: {context.current_date}")
            today = context.current_date.split("T")[0]
            todays_events = [event for event in context.events if event.date == today]
            if todays_events:
                listed = ", ".join(
                    f"{event.start_time or 'all day'} - {event.title}" for event in todays_events
                )
                facts.append(f"Today's events: {listed}")
        if context.preferences and context.preferences.focus_areas:
            facts.append(
                f"User's focus areas: {', '.join(context.preferences.focus_areas)}"
            )

    lines = [f"You are a personal AI calendar assistant for {user_email}.", ""]
    if facts:
        lines.extend(["Context:", *facts, ""])
    lines.extend(
        [
            f'User request: "{message}"',
            "",
            f"You have access to Google Calendar tools to help manage {user_email}'s calendar.",
            _CAPABILITIES,
        ]
    )
    return "\n".join(lines)


def build_summary_prompt(*, user_email: str, transcript: ToolCallTranscript) -> str:
    calls = json.dumps([call.model_dump() for call in transcript.tool_calls], default=str)
    results = json.dumps([result.model_dump() for result in transcript.tool_results], default=str)
    lines = [
        f"Based on these calendar operations for {user_email}:",
        "",
        f"Tool calls: {calls}",
        f"Results: {results}",
    ]
    if transcript.text:
        lines.append(f"Assistant draft reply: {transcript.text}")
    lines.extend(
        [
            "",
            f"Provide a friendly, conversational summary of what was accomplished for {user_email}. "
            "If calendar events were created, updated, or managed, mention the specific details. "
            "If there were any issues, explain them clearly.",
            "",
            "If no calendar operations were performed, just provide a helpful response to their message.",
        ]
    )
    return "\n".join(lines)


class CalendarAssistant:
    """Answer chat messages for users with an active calendar connection."""

    def __init__(
        self,
        *,
        llm: LLMClient,
        connector: ToolConnector,
        registry: ConnectionRegistry,
        bridge: IntegrationBridge,
    ) -> None:
        self._llm = llm
        self._connector = connector
        self._registry = registry
        self._bridge = bridge

    async def resolve_connection(self, user_email: str) -> ConnectionStatus:
        """Combine the OAuth registry with the connector-side status."""
        record = self._registry.get(user_email)
        if record is None or record.status is ConnectionRecordStatus.REVOKED:
            return ConnectionStatus(
                status=ConnectionState.NOT_FOUND, message="No connection found"
            )
        if not self._registry.is_active(user_email):
            return ConnectionStatus(
                status=ConnectionState.ERROR, message="Google Calendar access has expired"
            )
        return await self._bridge.check_connection_status(user_email)

    async def send_message(
        self,
        *,
        message: str,
        user_email: str,
        context: ChatContext | None = None,
    ) -> AssistantReply:
        if not message or not message.strip():
            raise ValidationError("Message is required")
        if not user_email or not user_email.strip():
            raise ValidationError("User email is required for personalized calendar management")

        logger.info("Processing AI message for %s", user_email)
        status = await self.resolve_connection(user_email)
        if status.status is not ConnectionState.ACTIVE:
            logger.info("Connection for %s is %s; asking user to connect", user_email, status.status.value)
            return AssistantReply(
                message=_CONNECTION_REPLIES[status.status].format(reason=status.message),
                user_email=user_email,
                needs_connection=True,
                redirect_url=status.redirect_url,
            )

        entity_id = entity_id_for(user_email)
        tools = status.tools
        prompt = build_calendar_prompt(user_email=user_email, message=message, context=context)

        logger.info("Sending request to Gemini for %s with %d tools", user_email, len(tools))
        transcript = await self.act(prompt=prompt, tools=tools, entity_id=entity_id)
        reply = await self.summarize(user_email=user_email, transcript=transcript)

        return AssistantReply(
            message=reply,
            user_email=user_email,
            transcript=transcript,
            tool_calls=[call.model_dump() for call in transcript.tool_calls],
            tool_results=[result.model_dump() for result in transcript.tool_results],
        )

    async def act(
        self, *, prompt: str, tools: list[ToolBinding], entity_id: str
    ) -> ToolCallTranscript:
        """Let the model pick tools, then execute each call in order."""
        plan = await self._llm.plan_tool_calls(prompt, tools)
        allowed = {tool.name for tool in tools}

        results: list[ToolResult] = []
        for call in plan.tool_calls:
            if call.name not in allowed:
                results.append(
                    ToolResult(
                        name=call.name,
                        successful=False,
                        error=f"Tool {call.name} is not available for this user.",
                    )
                )
                continue
            results.append(
                await self._connector.execute_action(entity_id, call.name, call.arguments)
            )
        return ToolCallTranscript(text=plan.text, tool_calls=plan.tool_calls, tool_results=results)

    async def summarize(self, *, user_email: str, transcript: ToolCallTranscript) -> str:
        reply = await self._llm.generate_text(
            build_summary_prompt(user_email=user_email, transcript=transcript)
        )
        return reply.strip() or transcript.text or "Done."


__all__ = [
    "AssistantReply",
    "CalendarAssistant",
    "LLMClient",
    "build_calendar_prompt",
    "build_summary_prompt",
]
