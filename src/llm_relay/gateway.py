"""FastAPI WebSocket gateway for the completion relay.

Accepts realtime connections, decodes ``{"event", "data"}`` frames and hands
them to one RelaySession per connection. This module handles transport
concerns (framing, validation, socket lifecycle logging) while delegating
streaming logic to the session.
"""

import json
import logging
import uuid
from collections.abc import Mapping
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from llm_relay import __version__
from llm_relay.config import RelaySettings
from llm_relay.errors import InvalidRequest
from llm_relay.events import (
    HELLO,
    REQUEST_COMPLETION,
    CompletionRequest,
    Event,
    HelloReply,
    HelloRequest,
)
from llm_relay.health import HealthCheck, HealthStatus, provider_credentials_check
from llm_relay.protocols import CompletionAdapter, ProviderId
from llm_relay.providers import build_adapters
from llm_relay.session import RelaySession

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Tracks live relay sessions so they can be closed on shutdown."""

    def __init__(self) -> None:
        self._sessions: dict[str, RelaySession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def add(self, session: RelaySession) -> None:
        self._sessions[session.connection_id] = session

    def remove(self, connection_id: str) -> None:
        self._sessions.pop(connection_id, None)

    async def close_all(self, reason: str = "server shutdown") -> int:
        """Disconnect every live session.

        Returns:
            Number of sessions closed.
        """
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            await session.disconnect(reason)
        return len(sessions)


def _request_id(data: Any) -> str | None:
    if isinstance(data, dict):
        value = data.get("request_id") or data.get("requestId")
        return str(value) if value is not None else None
    return None


async def dispatch_message(session: RelaySession, raw: str) -> None:
    """Decode one inbound frame and route it to the session.

    Frames that cannot be decoded are rejected with ``invalid_request``;
    they never affect a stream already in flight.
    """
    try:
        message = json.loads(raw)
    except json.JSONDecodeError as e:
        await session.reject(InvalidRequest(f"Frame is not valid JSON: {e.msg}"))
        return

    if not isinstance(message, dict) or "event" not in message:
        await session.reject(InvalidRequest("Frame must be an object with an 'event' field"))
        return

    name = message["event"]
    data = message.get("data")
    request_id = _request_id(data)

    try:
        if name == REQUEST_COMPLETION:
            request = CompletionRequest.model_validate(data)
            await session.request(request)
        elif name == HELLO:
            if isinstance(data, str):
                hello = HelloRequest(text=data)
            else:
                hello = HelloRequest.model_validate(data or {})
            await session.send(HelloReply(text=f"hello {hello.text}"))
        else:
            await session.reject(InvalidRequest(f"Unknown event '{name}'"), request_id)
    except ValidationError as e:
        logger.info(
            "relay.request.invalid",
            extra={"connection_id": session.connection_id, "event": name, "errors": e.error_count()},
        )
        await session.reject(
            InvalidRequest(f"Invalid '{name}' payload: {e.error_count()} validation error(s)"),
            request_id,
        )


def create_relay_router(
    adapters: Mapping[ProviderId, CompletionAdapter],
    registry: ConnectionRegistry | None = None,
) -> APIRouter:
    """Create a router exposing the relay WebSocket at ``/ws``.

    Args:
        adapters: Shared provider adapters, keyed by provider id.
        registry: Optional registry that tracks live sessions.

    Returns:
        Router with the WebSocket endpoint.
    """
    router = APIRouter(tags=["relay"])

    @router.websocket("/ws")
    async def relay_socket(websocket: WebSocket):
        """Relay completions for one client connection."""
        connection_id = uuid.uuid4().hex
        await websocket.accept()
        logger.info("Client connected [id: %s]", connection_id)

        async def emit(event: Event) -> None:
            await websocket.send_json(event.to_message())

        session = RelaySession(connection_id, adapters, emit)
        if registry is not None:
            registry.add(session)

        reason = "client disconnect"
        try:
            while True:
                raw = await websocket.receive_text()
                await dispatch_message(session, raw)
        except WebSocketDisconnect as e:
            reason = f"client disconnect (code {e.code})"
        except Exception:
            reason = "transport error"
            logger.exception("Socket error [id: %s]", connection_id)
        finally:
            await session.disconnect(reason)
            if registry is not None:
                registry.remove(connection_id)
            logger.info("Client disconnected [id: %s], reason: %s", connection_id, reason)

    return router


def create_app(
    settings: RelaySettings | None = None,
    adapters: Mapping[ProviderId, CompletionAdapter] | None = None,
) -> FastAPI:
    """Create the relay application.

    Args:
        settings: Relay settings (loads from env vars if None).
        adapters: Provider adapters; built from ``settings`` when omitted.

    Returns:
        FastAPI application with the relay WebSocket and health endpoints.

    Example:
        ```python
        app = create_app(RelaySettings(port=3001))
        uvicorn.run(app, host="0.0.0.0", port=3001)
        ```
    """
    if settings is None:
        settings = RelaySettings()
    if adapters is None:
        adapters = build_adapters(settings)

    registry = ConnectionRegistry()
    health = HealthCheck()
    health.register(
        "providers",
        provider_credentials_check(
            {pid: getattr(adapter, "has_credentials", True) for pid, adapter in adapters.items()}
        ),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Relay starting",
            extra={"providers": sorted(pid.value for pid in adapters)},
        )
        yield
        closed = await registry.close_all()
        logger.info("Relay shut down, closed %d sessions", closed)

    app = FastAPI(
        title="LLM Relay",
        description="Streams LLM completions to realtime clients",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.adapters = adapters
    app.state.registry = registry

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(create_relay_router(adapters, registry))

    @app.get("/health", tags=["operational"])
    async def health_check():
        """Aggregated health of the relay and its provider configuration."""
        report = await health.check()
        status_code = 503 if report["status"] == HealthStatus.UNHEALTHY.value else 200
        report["connections"] = len(registry)
        return JSONResponse(report, status_code=status_code)

    @app.get("/live", tags=["operational"])
    async def liveness_check() -> dict[str, bool]:
        """Liveness probe; does not touch providers."""
        return {"alive": True}

    return app
