"""Provider adapter protocol for multi-provider streaming.

Protocols define contracts between the relay and the provider layer, enabling
loose coupling and easy testing through stub implementations.
"""

from collections.abc import AsyncIterator, Sequence
from enum import Enum
from typing import Any, Literal, Protocol

from pydantic import BaseModel

from llm_relay.params import CompletionParameters


class ProviderId(str, Enum):
    """Identifier of a configured upstream provider."""

    DEEPSEEK = "deepseek"
    DEEPINFRA = "deepinfra"


class ChatMessage(BaseModel):
    """One prior turn of the conversation, in OpenAI message format."""

    model_config = {"frozen": True}

    role: Literal["system", "user", "assistant"]
    content: str


class ChunkStream(Protocol):
    """An established upstream stream of raw provider chunks.

    Iterating yields provider-specific chunk objects. ``aclose`` releases the
    upstream request and is safe to call more than once.
    """

    def __aiter__(self) -> AsyncIterator[Any]: ...

    async def aclose(self) -> None: ...


class CompletionAdapter(Protocol):
    """Protocol for provider adapters.

    Implementations wrap one upstream provider behind a uniform streaming
    interface and hold no per-request state.
    """

    @property
    def provider_id(self) -> ProviderId: ...

    @property
    def default_model(self) -> str: ...

    @property
    def default_parameters(self) -> CompletionParameters: ...

    async def open_stream(
        self,
        system_prompt: str,
        conversation: Sequence[ChatMessage],
        parameters: CompletionParameters,
        model: str | None = None,
    ) -> ChunkStream:
        """Establish a streaming completion.

        Raises:
            ProviderUnavailable: If the stream cannot be established.
        """
        ...
