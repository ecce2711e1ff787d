"""Client wrapper for interacting with Google Gemini models."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Any, Callable, Iterable

import google.generativeai as genai
from google.api_core.exceptions import GoogleAPICallError, NotFound

from smartplan.core.config import GeminiSettings
from smartplan.core.errors import UpstreamServiceError
from smartplan.models.tools import ToolBinding, ToolCall, ToolPlan

_TEXT_FALLBACKS: tuple[str, ...] = (
    "gemini-2.0-flash",
    "gemini-1.5-flash",
)

# Schema keywords Gemini function declarations understand; the rest of JSON
# schema (titles, defaults, examples, $refs) is rejected by the API.
_SCHEMA_KEYS = frozenset(
    {"type", "format", "description", "nullable", "enum", "properties", "required", "items"}
)

logger = logging.getLogger(__name__)


class GeminiModelError(UpstreamServiceError):
    """Raised when Gemini cannot fulfill a request."""


class GeminiClient:
    """Text generation and tool planning on top of the Gemini SDK."""

    def __init__(self, settings: GeminiSettings) -> None:
        self._settings = settings
        if settings.api_key:
            # Configure the global client once per process.
            genai.configure(api_key=settings.api_key)
        else:
            logger.warning("GEMINI_API_KEY missing; chat replies are unavailable.")

    async def generate_text(self, prompt: str) -> str:
        """Produce a free-form text response using the configured model."""

        def _invoke() -> str:
            response = self._invoke_with_models(
                models=self._text_model_candidates(),
                error_prefix="Gemini text generate_content failed",
                build=lambda name: genai.GenerativeModel(name),
                call=lambda model: model.generate_content(prompt),
            )
            return _extract_plan(response).text

        return await asyncio.to_thread(_invoke)

    async def plan_tool_calls(self, prompt: str, tools: list[ToolBinding]) -> ToolPlan:
        """Run one tool-enabled generation and return the requested calls.

        Calls are returned, not executed; the caller decides how to run them.
        """
        declarations = [to_function_declaration(tool) for tool in tools]

        def _invoke() -> ToolPlan:
            tool_spec = [{"function_declarations": declarations}] if declarations else None
            response = self._invoke_with_models(
                models=self._text_model_candidates(),
                error_prefix="Gemini tool generate_content failed",
                build=lambda name: genai.GenerativeModel(name, tools=tool_spec),
                call=lambda model: model.generate_content(prompt),
            )
            return _restore_integers(_extract_plan(response), tools)

        return await asyncio.to_thread(_invoke)

    def _invoke_with_models(
        self,
        *,
        models: Iterable[str],
        error_prefix: str,
        build: Callable[[str], genai.GenerativeModel],
        call: Callable[[genai.GenerativeModel], Any],
    ) -> Any:
        """Try the configured model followed by fallbacks when available."""
        if not self._settings.api_key:
            raise GeminiModelError("Gemini is not configured: GEMINI_API_KEY is missing.")

        model_sequence = list(models)
        last_not_found: NotFound | None = None
        for index, model_name in enumerate(model_sequence):
            generative_model = build(model_name)
            try:
                return call(generative_model)
            except NotFound as exc:  # pragma: no cover - network call
                last_not_found = exc
                logger.warning(
                    "Gemini model '%s' not found (attempt %d/%d); trying fallback.",
                    model_name,
                    index + 1,
                    len(model_sequence),
                )
                continue
            except GoogleAPICallError as exc:  # pragma: no cover - network call
                raise GeminiModelError(f"{error_prefix}: {exc.message}") from exc

        if last_not_found is not None:
            primary = model_sequence[0] if model_sequence else "unknown"
            raise GeminiModelError(
                f"Gemini model '{primary}' is not available. "
                "Update GEMINI_MODEL_NAME to a supported value."
            ) from last_not_found

        raise GeminiModelError(f"{error_prefix}: Unknown error invoking Gemini.")

    def _text_model_candidates(self) -> list[str]:
        return self._collect_candidates(self._settings.model_name, _TEXT_FALLBACKS)

    @staticmethod
    def _collect_candidates(
        configured: str | None,
        fallbacks: tuple[str, ...],
    ) -> list[str]:
        """Return distinct model names prioritizing the configured value."""
        seen: set[str] = set()
        candidates: list[str] = []
        for name in (configured, *fallbacks):
            if not name:
                continue
            cleaned = name.strip()
            if not cleaned or cleaned in seen:
                continue
            seen.add(cleaned)
            candidates.append(cleaned)
        return candidates


def to_function_declaration(tool: ToolBinding) -> dict[str, Any]:
    """Translate a connector tool schema into a Gemini function declaration."""
    declaration: dict[str, Any] = {
        "name": tool.name,
        "description": tool.description or tool.name,
    }
    parameters = _clean_schema(tool.parameters) if tool.parameters else None
    # Gemini rejects OBJECT schemas without properties.
    if parameters and parameters.get("properties"):
        declaration["parameters"] = parameters
    return declaration


def _clean_schema(schema: Mapping[str, Any]) -> dict[str, Any]:
    cleaned: dict[str, Any] = {}
    for key, value in schema.items():
        if key not in _SCHEMA_KEYS:
            continue
        if key == "type":
            type_name, nullable = _normalize_type(value)
            if type_name:
                cleaned["type"] = type_name
            if nullable:
                cleaned["nullable"] = True
        elif key == "properties" and isinstance(value, Mapping):
            cleaned["properties"] = {
                name: _clean_schema(prop)
                for name, prop in value.items()
                if isinstance(prop, Mapping)
            }
        elif key == "items" and isinstance(value, Mapping):
            cleaned["items"] = _clean_schema(value)
        elif key == "required":
            cleaned["required"] = [str(name) for name in value]
        elif key == "enum":
            cleaned["enum"] = [str(option) for option in value]
        else:
            cleaned[key] = value

    if "required" in cleaned:
        known = set(cleaned.get("properties", {}))
        cleaned["required"] = [name for name in cleaned["required"] if name in known]
        if not cleaned["required"]:
            cleaned.pop("required")
    if "type" not in cleaned:
        cleaned["type"] = "OBJECT" if "properties" in cleaned else "STRING"
    return cleaned


def _normalize_type(value: Any) -> tuple[str | None, bool]:
    if isinstance(value, str):
        return value.upper(), False
    if isinstance(value, Sequence):
        names = [str(item) for item in value if item != "null"]
        return (names[0].upper() if names else None), len(names) != len(value)
    return None, False


def _to_plain(value: Any) -> Any:
    """Convert proto map/repeated composites returned by the SDK to builtins."""
    if isinstance(value, Mapping):
        return {str(key): _to_plain(item) for key, item in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return [_to_plain(item) for item in value]
    return value


def _coerce_integers(value: Any, schema: Mapping[str, Any]) -> Any:
    """Undo the float widening of protobuf Struct numbers for integer fields."""
    type_name, _ = _normalize_type(schema.get("type"))
    if type_name == "INTEGER" and isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, dict):
        properties = schema.get("properties")
        if isinstance(properties, Mapping):
            return {
                key: _coerce_integers(item, properties[key])
                if isinstance(properties.get(key), Mapping)
                else item
                for key, item in value.items()
            }
    if isinstance(value, list) and isinstance(schema.get("items"), Mapping):
        return [_coerce_integers(item, schema["items"]) for item in value]
    return value


def _restore_integers(plan: ToolPlan, tools: Sequence[ToolBinding]) -> ToolPlan:
    schemas = {tool.name: tool.parameters for tool in tools if tool.parameters}
    for call in plan.tool_calls:
        schema = schemas.get(call.name)
        if schema:
            call.arguments = _coerce_integers(call.arguments, schema)
    return plan


def _extract_plan(response: Any) -> ToolPlan:
    texts: list[str] = []
    calls: list[ToolCall] = []
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            function_call = getattr(part, "function_call", None)
            if function_call is not None and getattr(function_call, "name", ""):
                calls.append(
                    ToolCall(
                        name=function_call.name,
                        arguments=_to_plain(function_call.args) or {},
                    )
                )
                continue
            text = getattr(part, "text", "")
            if text:
                texts.append(text)
        # Only the first candidate is used.
        break
    return ToolPlan(text="".join(texts).strip(), tool_calls=calls)


__all__ = ["GeminiClient", "GeminiModelError", "to_function_declaration"]
