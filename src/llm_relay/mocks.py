"""Stub provider implementations for testing the relay.

Provides in-memory adapters that yield scripted chunks, so sessions and the
gateway can be exercised without network access.
"""

import asyncio
from collections.abc import AsyncIterator, Sequence
from typing import Any

from llm_relay.errors import ProviderUnavailable
from llm_relay.params import DEFAULT_PARAMETERS, CompletionParameters
from llm_relay.protocols import ChatMessage, ProviderId


def text_chunk(content: str | None) -> dict[str, Any]:
    """Build an OpenAI-style streaming chunk carrying ``content``."""
    return {"choices": [{"index": 0, "delta": {"content": content}}]}


def text_chunks(contents: Sequence[str | None]) -> list[dict[str, Any]]:
    """Build a chunk per content value, preserving order."""
    return [text_chunk(content) for content in contents]


class StubStream:
    """Scripted upstream stream.

    Yields the configured chunks, then raises ``error`` if one is set, or
    blocks forever when ``hang`` is set. Records whether it was closed;
    ``close_delay`` makes closing suspend like a real network stream.
    """

    def __init__(
        self,
        chunks: Sequence[Any],
        error: Exception | None = None,
        delay: float = 0.0,
        hang: bool = False,
        close_delay: float = 0.0,
    ) -> None:
        self._chunks = list(chunks)
        self._error = error
        self._delay = delay
        self._hang = hang
        self._close_delay = close_delay
        self.closed = False
        self.yielded = 0

    async def __aiter__(self) -> AsyncIterator[Any]:
        for chunk in self._chunks:
            if self.closed:
                return
            if self._delay:
                await asyncio.sleep(self._delay)
            self.yielded += 1
            yield chunk
        if self._error is not None:
            raise self._error
        if self._hang:
            await asyncio.Event().wait()

    async def aclose(self) -> None:
        self.closed = True
        if self._close_delay:
            await asyncio.sleep(self._close_delay)


class StubAdapter:
    """Stub provider adapter for testing.

    Records every call and returns a fresh StubStream per call. Configure
    ``open_error`` to simulate a provider that cannot be reached.
    """

    def __init__(
        self,
        chunks: Sequence[Any] = (),
        provider_id: ProviderId = ProviderId.DEEPSEEK,
        open_error: Exception | None = None,
        stream_error: Exception | None = None,
        delay: float = 0.0,
        hang: bool = False,
        close_delay: float = 0.0,
        default_model: str = "stub-model",
        default_parameters: CompletionParameters = DEFAULT_PARAMETERS,
    ) -> None:
        self._chunks = list(chunks)
        self._provider_id = provider_id
        self._open_error = open_error
        self._stream_error = stream_error
        self._delay = delay
        self._hang = hang
        self._close_delay = close_delay
        self._default_model = default_model
        self._default_parameters = default_parameters
        self.calls: list[dict[str, Any]] = []
        self.streams: list[StubStream] = []

    @classmethod
    def from_texts(cls, contents: Sequence[str | None], **kwargs: Any) -> "StubAdapter":
        """Create a stub whose stream yields one chunk per content value."""
        return cls(chunks=text_chunks(contents), **kwargs)

    @property
    def provider_id(self) -> ProviderId:
        return self._provider_id

    @property
    def default_model(self) -> str:
        return self._default_model

    @property
    def default_parameters(self) -> CompletionParameters:
        return self._default_parameters

    async def open_stream(
        self,
        system_prompt: str,
        conversation: Sequence[ChatMessage],
        parameters: CompletionParameters,
        model: str | None = None,
    ) -> StubStream:
        """Record the call and return a scripted stream."""
        self.calls.append({
            "system_prompt": system_prompt,
            "conversation": list(conversation),
            "parameters": parameters,
            "model": model or self._default_model,
        })
        if self._open_error is not None:
            if isinstance(self._open_error, ProviderUnavailable):
                raise self._open_error
            raise ProviderUnavailable(
                f"{self._provider_id.value} unavailable: {self._open_error}",
                cause=self._open_error,
            ) from self._open_error

        stream = StubStream(
            self._chunks,
            error=self._stream_error,
            delay=self._delay,
            hang=self._hang,
            close_delay=self._close_delay,
        )
        self.streams.append(stream)
        return stream
