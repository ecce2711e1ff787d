"""
FastAPI routes for the calendar agent API.
"""

from __future__ import annotations

import html
import logging
import platform
import uuid
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Annotated, Any
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from smartplan.core.config import AppSettings
from smartplan.core.errors import (
    IntegrationSetupFailed,
    TokenExchangeFailed,
    UpstreamServiceError,
    ValidationError,
)
from smartplan.dependencies import (
    get_app_settings,
    get_calendar_assistant,
    get_chat_notifications,
    get_connection_registry,
    get_google_oauth_client,
    get_google_token_service,
    get_integration_bridge,
    get_oauth_callback_handler,
    get_oauth_state_encoder,
    get_process_stats,
)
from smartplan.models.connection import ConnectionState, EntityConnectionStatus
from smartplan.schemas import (
    OAuthCallbackPayload,
    SendMessageRequest,
    SendMessageResponse,
    SetupConnectionResponse,
    UserEmailRequest,
)
from smartplan.services import CallbackOutcome, CallbackStatus
from smartplan.services.integration_bridge import entity_id_for

router = APIRouter()
logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _require_email(payload: UserEmailRequest, message: str = "userEmail is required") -> str:
    email = (payload.user_email or "").strip()
    if not email:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=message)
    return email


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck(
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    registry: Annotated[Any, Depends(get_connection_registry)],
    bridge: Annotated[Any, Depends(get_integration_bridge)],
) -> dict:
    """Health endpoint with service configuration flags."""
    return {
        "status": "ok",
        "timestamp": _timestamp(),
        "services": settings.service_status(),
        "userConnections": registry.summary().total,
        "userEntities": bridge.entity_count(),
    }


@router.get("/auth/google/authorize", status_code=HTTPStatus.OK)
async def start_google_oauth_flow(
    request: Request,
    oauth_client: Annotated[Any, Depends(get_google_oauth_client)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    user_email: str = Query(..., alias="userEmail", min_length=1),
    redirect_to: str | None = Query(
        default=None,
        alias="redirectTo",
        description="Optional URL to return to after a successful authentication.",
    ),
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the Google consent screen.",
    ),
) -> Any:
    """
    Kick off the OAuth flow by generating a state token and authorization URL.
    """
    state_payload = {
        "nonce": uuid.uuid4().hex,
        "redirect_to": redirect_to,
        "user_email": user_email.strip(),
        "issued_at": datetime.now(timezone.utc).isoformat(),
    }
    state = state_encoder.encode(state_payload)
    authorization_url = oauth_client.build_authorization_url(state=state)

    accept_header = request.headers.get("accept", "")
    wants_html = "text/html" in accept_header.lower()
    if redirect or wants_html:
        return RedirectResponse(url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT)

    return {"authorizationUrl": authorization_url, "state": state}


@router.get("/auth/google/callback")
async def handle_google_oauth_redirect(
    request: Request,
    handler: Annotated[Any, Depends(get_oauth_callback_handler)],
) -> Any:
    """Browser redirect target registered with Google."""
    outcome = await handler.handle(str(request.url))
    accept_header = request.headers.get("accept", "")
    if "text/html" in accept_header.lower():
        return _render_callback_page(outcome)
    return _callback_json(outcome)


@router.post("/auth/google/callback")
async def handle_google_oauth_callback(
    payload: OAuthCallbackPayload,
    request: Request,
    handler: Annotated[Any, Depends(get_oauth_callback_handler)],
) -> JSONResponse:
    """Complete the exchange for clients that captured the redirect themselves."""
    callback_url = f"{request.url_for('handle_google_oauth_redirect')}?" + urlencode(
        {"code": payload.code, "state": payload.state}
    )
    outcome = await handler.handle(callback_url)
    return _callback_json(outcome)


@router.post("/auth/google/refresh", status_code=HTTPStatus.OK)
async def refresh_google_connection(
    payload: UserEmailRequest,
    token_service: Annotated[Any, Depends(get_google_token_service)],
) -> dict:
    email = _require_email(payload)
    try:
        refreshed = await token_service.refresh_connection(email)
    except TokenExchangeFailed as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_GATEWAY, detail=str(exc)) from exc
    return {"success": True, "userEmail": email, "refreshed": refreshed, "timestamp": _timestamp()}


@router.post("/auth/google/revoke", status_code=HTTPStatus.OK)
async def revoke_google_connection(
    payload: UserEmailRequest,
    registry: Annotated[Any, Depends(get_connection_registry)],
) -> dict:
    email = _require_email(payload)
    revoked = registry.revoke(email)
    return {"success": True, "userEmail": email, "revoked": revoked, "timestamp": _timestamp()}


@router.post("/connector/setup-connection", status_code=HTTPStatus.OK)
async def setup_connector_connection(
    payload: UserEmailRequest,
    bridge: Annotated[Any, Depends(get_integration_bridge)],
) -> dict:
    email = _require_email(payload)
    try:
        connection = await bridge.setup_connection(email)
    except IntegrationSetupFailed as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_GATEWAY, detail=str(exc)) from exc

    if connection.status is EntityConnectionStatus.PENDING:
        message = "Please complete Google Calendar authentication using the redirect URL"
    else:
        message = f"Google Calendar connection is active for {email}"
    response = SetupConnectionResponse(
        user_email=email,
        entity_id=connection.entity_id,
        connection_id=connection.connection_id,
        status=connection.status.value,
        redirect_url=connection.redirect_url,
        message=message,
    )
    return {**response.model_dump(by_alias=True, exclude_none=True), "timestamp": _timestamp()}


@router.post("/ai/send-message", status_code=HTTPStatus.OK)
async def send_message(
    payload: SendMessageRequest,
    assistant: Annotated[Any, Depends(get_calendar_assistant)],
) -> dict:
    """Route a chat message through the calendar tools."""
    if not (payload.message or "").strip():
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail="Message is required")
    if not (payload.user_email or "").strip():
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="User email is required for personalized calendar management",
        )

    try:
        reply = await assistant.send_message(
            message=payload.message,
            user_email=payload.user_email.strip(),
            context=payload.context,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)) from exc
    except UpstreamServiceError as exc:
        logger.error("Error processing AI message: %s", exc)
        raise HTTPException(status_code=HTTPStatus.BAD_GATEWAY, detail=str(exc)) from exc

    response = SendMessageResponse(
        message=reply.message,
        user_email=reply.user_email,
        needs_connection=reply.needs_connection,
        redirect_url=reply.redirect_url,
        tool_calls=None if reply.needs_connection else reply.tool_calls,
        tool_results=None if reply.needs_connection else reply.tool_results,
    )
    return {**response.model_dump(by_alias=True, exclude_none=True), "timestamp": _timestamp()}


@router.get("/connector/connections", status_code=HTTPStatus.OK)
async def list_connections(
    registry: Annotated[Any, Depends(get_connection_registry)],
    bridge: Annotated[Any, Depends(get_integration_bridge)],
) -> dict:
    """Connection summaries without tokens."""
    entities = {connection.user_email: connection for connection in bridge.list_connections()}
    summaries: dict[str, dict[str, Any]] = {}

    for record in registry.list_connections():
        summaries[record.user_email] = {
            "userEmail": record.user_email,
            "connectionId": record.connection_id,
            "status": record.status.value,
            "active": registry.is_active(record.user_email),
            "expiresAt": record.expires_at.isoformat(),
            "connectedAt": record.created_at.isoformat(),
            "hasRefreshToken": bool(record.refresh_token),
        }
    for email, connection in entities.items():
        summary = summaries.setdefault(email, {"userEmail": email})
        summary["entityId"] = connection.entity_id
        summary["entityConnectionId"] = connection.connection_id
        summary["entityStatus"] = connection.status.value
        if connection.redirect_url:
            summary["redirectUrl"] = connection.redirect_url

    connections = [summaries[email] for email in sorted(summaries)]
    return {
        "success": True,
        "connections": connections,
        "userCount": len(connections),
        "timestamp": _timestamp(),
    }


@router.post("/connector/test-connection", status_code=HTTPStatus.OK)
async def test_connector_connection(
    payload: UserEmailRequest,
    assistant: Annotated[Any, Depends(get_calendar_assistant)],
    bridge: Annotated[Any, Depends(get_integration_bridge)],
) -> dict:
    email = _require_email(payload, "userEmail is required for connection test")
    status = await assistant.resolve_connection(email)
    connection = bridge.get_connection(email)

    if status.status is ConnectionState.ACTIVE:
        return {
            "success": True,
            "testResult": {
                "status": "success",
                "message": f"Connection test successful for {email}",
                "userEmail": email,
                "entityId": entity_id_for(email),
                "connectionId": connection.connection_id if connection else None,
                "connectionStatus": status.status.value,
                "toolsAvailable": status.tools_available,
            },
            "timestamp": _timestamp(),
        }
    return {
        "success": False,
        "error": f"Connection test failed for {email}: {status.message}",
        "userEmail": email,
        "connectionStatus": status.status.value,
        "timestamp": _timestamp(),
    }


@router.get("/chat/messages", status_code=HTTPStatus.OK)
async def list_chat_messages(
    notifications: Annotated[Any, Depends(get_chat_notifications)],
    user_email: str = Query(..., alias="userEmail", min_length=1),
) -> dict:
    messages = notifications.list_messages(user_email)
    return {
        "userEmail": user_email,
        "messages": [message.model_dump(mode="json") for message in messages],
    }


@router.get("/stats", status_code=HTTPStatus.OK)
async def service_stats(
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    registry: Annotated[Any, Depends(get_connection_registry)],
    bridge: Annotated[Any, Depends(get_integration_bridge)],
    stats: Annotated[Any, Depends(get_process_stats)],
) -> dict:
    entities = bridge.list_connections()
    return {
        "success": True,
        "stats": {
            "connections": registry.summary().model_dump(),
            "userEntities": len(entities),
            "uptimeSeconds": stats.uptime_seconds(),
            "requests": stats.request_counts(),
            "pythonVersion": platform.python_version(),
            "platform": platform.platform(),
            "services": settings.service_status(),
            "userEntityMapping": [
                {
                    "userEmail": connection.user_email,
                    "entityId": connection.entity_id,
                    "connectionStatus": connection.status.value,
                }
                for connection in entities
            ],
        },
        "timestamp": _timestamp(),
    }


def _callback_json(outcome: CallbackOutcome) -> JSONResponse:
    status_code = (
        HTTPStatus.OK if outcome.status is CallbackStatus.SUCCESS else HTTPStatus.BAD_REQUEST
    )
    return JSONResponse(status_code=status_code, content=outcome.model_dump(mode="json"))


def _render_callback_page(outcome: CallbackOutcome) -> HTMLResponse:
    """Status page that sends the browser back to the app after a delay."""
    status_code = (
        HTTPStatus.OK if outcome.status is CallbackStatus.SUCCESS else HTTPStatus.BAD_REQUEST
    )
    target = html.escape(outcome.redirect_to, quote=True)
    details = f"<p>{html.escape(outcome.details)}</p>" if outcome.details else ""
    action = (
        f'<p><a href="{target}">Return to App</a></p>'
        if outcome.status is CallbackStatus.ERROR
        else ""
    )
    body = (
        "<!doctype html><html><head><meta charset=\"utf-8\">"
        f'<meta http-equiv="refresh" content="{outcome.redirect_after_seconds};url={target}">'
        f"<title>{html.escape(outcome.message)}</title></head>"
        f'<body data-status="{outcome.status.value}">'
        f"<h1>{html.escape(outcome.message)}</h1>{details}{action}</body></html>"
    )
    return HTMLResponse(content=body, status_code=status_code)
