"""
Models passed between the connector platform, the LLM and the dispatcher.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ToolBinding(BaseModel):
    """A connector action exposed to the LLM for one user's entity."""

    name: str
    description: str = ""
    parameters: Dict[str, Any] = Field(
        default_factory=dict, description="JSON schema of the action input."
    )


class ToolCall(BaseModel):
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    name: str
    successful: bool
    data: Any = None
    error: Optional[str] = None


class ToolPlan(BaseModel):
    """What the LLM produced on the tool-enabled pass."""

    text: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)


class ToolCallTranscript(BaseModel):
    """Artifact handed from the act stage to the summarize stage."""

    text: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    tool_results: List[ToolResult] = Field(default_factory=list)


__all__ = ["ToolBinding", "ToolCall", "ToolCallTranscript", "ToolPlan", "ToolResult"]
