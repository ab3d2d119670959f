"""Per-connection completion relay.

This module provides the RelaySession class that binds one client connection
to at most one in-flight completion, forwarding normalized fragments as they
arrive and finishing every request with exactly one terminal event.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from enum import Enum
from typing import Any

from llm_relay.errors import (
    ProviderUnavailable,
    RelayError,
    SessionBusy,
    StreamInterrupted,
)
from llm_relay.events import (
    CompletionEnd,
    CompletionError,
    CompletionRejected,
    CompletionRequest,
    Event,
    Fragment,
)
from llm_relay.normalizer import normalize_stream
from llm_relay.params import resolve_parameters
from llm_relay.protocols import ChunkStream, CompletionAdapter, ProviderId

logger = logging.getLogger(__name__)

Emit = Callable[[Event], Awaitable[None]]


class SessionState(str, Enum):
    """Stream state of a relay session."""

    IDLE = "idle"
    STREAMING = "streaming"
    CLOSED = "closed"


class _ConnectionLost(Exception):
    """Raised internally when the client can no longer receive events."""


class RelaySession:
    """Relays completions for a single client connection.

    The session owns its state exclusively. A request is accepted only when no
    stream is active; the stream is pumped in its own task so the connection
    keeps receiving inbound events (and can be rejected or disconnected)
    while fragments flow.

    Outbound events are serialized through a lock, so a busy rejection never
    interleaves with a fragment mid-send.
    """

    def __init__(
        self,
        connection_id: str,
        adapters: Mapping[ProviderId, CompletionAdapter],
        emit: Emit,
    ):
        """Initialize relay session.

        Args:
            connection_id: Opaque identifier of the client connection.
            adapters: Shared, read-only provider adapters.
            emit: Coroutine that delivers one outbound event to the client.
        """
        self.connection_id = connection_id
        self._adapters = adapters
        self._emit = emit
        self._state = SessionState.IDLE
        self._task: asyncio.Task[None] | None = None
        self._stream: ChunkStream | None = None
        self._disconnected = False
        self._send_lock = asyncio.Lock()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def disconnected(self) -> bool:
        return self._disconnected

    async def request(self, request: CompletionRequest) -> None:
        """Start streaming a completion, or reject it if one is active.

        Returns as soon as the stream is started; fragments are delivered by a
        background task.
        """
        if self._disconnected:
            logger.debug(
                "relay.request.ignored", extra={"connection_id": self.connection_id}
            )
            return

        if self._state == SessionState.STREAMING:
            busy = SessionBusy(self.connection_id)
            logger.info(
                "relay.request.busy",
                extra={"connection_id": self.connection_id, "request_id": request.request_id},
            )
            await self.reject(busy, request.request_id)
            return

        self._state = SessionState.STREAMING
        self._task = asyncio.create_task(
            self._pump(request), name=f"relay-{self.connection_id}"
        )

    async def reject(self, error: RelayError, request_id: str | None = None) -> None:
        """Refuse a request without affecting the in-flight stream."""
        await self.send(
            CompletionRejected(request_id=request_id, code=error.code, message=error.message)
        )

    async def send(self, event: Event) -> None:
        """Send an event outside any stream, dropping it if the client is gone."""
        try:
            await self._send(event)
        except _ConnectionLost:
            pass

    async def disconnect(self, reason: str = "client disconnect") -> None:
        """Abandon forwarding and release the upstream stream.

        Nothing is emitted after this call. Safe to call more than once.
        """
        already = self._disconnected
        self._disconnected = True

        task = self._task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self._release_stream()
        self._state = SessionState.CLOSED

        if not already:
            logger.info(
                "relay.session.disconnected",
                extra={"connection_id": self.connection_id, "reason": reason},
            )

    async def wait(self) -> None:
        """Wait until the in-flight stream, if any, has finished."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def _send(self, event: Event) -> None:
        if self._disconnected:
            raise _ConnectionLost()
        async with self._send_lock:
            if self._disconnected:
                raise _ConnectionLost()
            try:
                await self._emit(event)
            except Exception as e:
                self._disconnected = True
                logger.info(
                    "relay.emit.failed",
                    extra={"connection_id": self.connection_id, "error": str(e)[:200]},
                )
                raise _ConnectionLost() from e

    async def _pump(self, request: CompletionRequest) -> None:
        try:
            terminal = await self._run_stream(request)
        except _ConnectionLost:
            terminal = None
        finally:
            await self._release_stream()
            self._state = SessionState.CLOSED

        # state is Closed before the terminal event goes out
        if terminal is not None:
            await self.send(terminal)

    async def _open(self, request: CompletionRequest) -> ChunkStream:
        adapter = self._adapters.get(request.provider)
        if adapter is None:
            raise ProviderUnavailable(f"Provider {request.provider.value} is not configured")

        parameters = resolve_parameters(request.parameters, adapter.default_parameters)
        self._stream = await adapter.open_stream(
            request.system_prompt,
            request.conversation,
            parameters,
            request.model,
        )
        return self._stream

    async def _run_stream(self, request: CompletionRequest) -> Event | None:
        """Forward fragments and return the terminal event to send.

        Returns None when the client went away and nothing more may be sent.
        """
        request_id = request.request_id
        extra: dict[str, Any] = {
            "connection_id": self.connection_id,
            "request_id": request_id,
            "provider": request.provider.value,
        }
        count = 0

        try:
            stream = await self._open(request)
            async for text in normalize_stream(stream):
                if self._disconnected:
                    return None
                await self._send(Fragment(request_id=request_id, text=text))
                count += 1
                if count == 1:
                    logger.info("relay.stream.first_fragment", extra=extra)
        except _ConnectionLost:
            raise
        except (ProviderUnavailable, StreamInterrupted) as e:
            logger.warning(
                "relay.stream.error",
                extra={**extra, "code": e.code, "fragments": count, "error": e.message[:200]},
            )
            return CompletionError(request_id=request_id, code=e.code, message=e.message)
        except Exception as e:
            logger.exception("relay.stream.unexpected", extra={**extra, "fragments": count})
            return CompletionError(
                request_id=request_id,
                code=StreamInterrupted.code,
                message=f"Stream failed: {e}",
            )

        logger.info("relay.stream.done", extra={**extra, "fragments": count})
        return CompletionEnd(request_id=request_id)

    async def _release_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        close = getattr(stream, "aclose", None)
        if close is not None:
            await close()
