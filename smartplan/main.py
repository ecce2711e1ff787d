"""
FastAPI application entrypoint for the calendar agent API.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Annotated, Any, FrozenSet, List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.routing import compile_path

from smartplan.api.routes import router as api_router
from smartplan.core.config import get_settings
from smartplan.core.logging import configure_logging
from smartplan.dependencies import (
    get_connection_registry,
    get_integration_bridge,
    get_process_stats,
)

API_PREFIX = "/api"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _RouteEntry:
    methods: FrozenSet[str]
    path: str
    pattern: re.Pattern


def _entry(route: APIRoute, prefix: str = "") -> _RouteEntry:
    path = f"{prefix}{route.path}"
    pattern, _, _ = compile_path(path)
    return _RouteEntry(methods=frozenset(route.methods or ()), path=path, pattern=pattern)


def _route_table(app: FastAPI) -> List[_RouteEntry]:
    """App-level routes plus the API router's routes under ``API_PREFIX``.

    Built from ``api_router`` itself so the result does not depend on how
    ``include_router`` stores included routes on the app.
    """
    api_endpoints = {route.endpoint for route in api_router.routes if isinstance(route, APIRoute)}
    entries = [
        _entry(route)
        for route in app.routes
        if isinstance(route, APIRoute) and route.endpoint not in api_endpoints
    ]
    entries.extend(
        _entry(route, API_PREFIX) for route in api_router.routes if isinstance(route, APIRoute)
    )
    return entries


def _available_endpoints(table: List[_RouteEntry]) -> list[str]:
    return [f"{method} {entry.path}" for entry in table for method in sorted(entry.methods)]


def _request_label(table: List[_RouteEntry], method: str, path: str) -> Optional[str]:
    for entry in table:
        if method in entry.methods and entry.pattern.match(path):
            return entry.path
    return None


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="SmartPlan Calendar Agent",
        version="0.1.0",
        description="Google Calendar OAuth, connector provisioning and AI chat dispatch.",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.server.client_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(api_router, prefix=API_PREFIX)
    route_table: List[_RouteEntry] = []

    @app.get("/", include_in_schema=False)
    async def root(
        request: Request,
        registry: Annotated[Any, Depends(get_connection_registry)],
        bridge: Annotated[Any, Depends(get_integration_bridge)],
    ) -> dict:
        return {
            "message": "SmartPlan API server with Composio + Gemini",
            "status": "running",
            "clientUrl": settings.server.client_url,
            "userConnections": registry.summary().total,
            "userEntities": bridge.entity_count(),
            "endpoints": _available_endpoints(route_table),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.middleware("http")
    async def count_requests(request: Request, call_next):
        response = await call_next(request)
        label = _request_label(route_table, request.method, request.url.path) or "unmatched"
        get_process_stats().record_request(f"{request.method} {label}")
        return response

    @app.exception_handler(StarletteHTTPException)
    async def not_found_handler(request: Request, exc: StarletteHTTPException):
        # Only unmatched routes; a handler raising 404 with its own detail keeps it.
        if exc.status_code == 404 and exc.detail == "Not Found":
            return JSONResponse(
                status_code=404,
                content={
                    "error": "Endpoint not found",
                    "path": request.url.path,
                    "availableEndpoints": _available_endpoints(route_table),
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                },
            )
        return await http_exception_handler(request, exc)

    route_table.extend(_route_table(app))

    for service, state in settings.service_status().items():
        log = logger.info if state == "configured" else logger.warning
        log("Service %s: %s", service, state)
    logger.info("CORS enabled for %s", settings.server.client_url)
    return app


app = create_app()


def run() -> None:  # pragma: no cover - process entry point
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.server.host, port=settings.server.port)


if __name__ == "__main__":  # pragma: no cover
    run()

__all__ = ["app", "create_app", "run"]
