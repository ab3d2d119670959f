"""Client-facing events exchanged over the realtime connection.

Every frame on the wire is ``{"event": <name>, "data": <payload>}``. Inbound
payloads are validated into request models; outbound events are frozen
models that know their own event name.
"""

from typing import Any, ClassVar

from pydantic import AliasChoices, BaseModel, Field

from llm_relay.params import ParameterOverrides
from llm_relay.protocols import ChatMessage, ProviderId

REQUEST_COMPLETION = "request_completion"
HELLO = "hello"


class Event(BaseModel):
    """Base for all outbound events. Frozen for safe concurrent handling."""

    model_config = {"frozen": True}

    name: ClassVar[str] = "event"

    def to_message(self) -> dict[str, Any]:
        """Serialize into the wire envelope."""
        return {"event": self.name, "data": self.model_dump()}


class CompletionRequest(BaseModel):
    """Inbound request to stream one completion."""

    model_config = {"frozen": True, "populate_by_name": True}

    provider: ProviderId
    system_prompt: str = Field(
        validation_alias=AliasChoices("system_prompt", "systemPrompt"),
    )
    conversation: list[ChatMessage] = Field(default_factory=list)
    parameters: ParameterOverrides = Field(default_factory=ParameterOverrides)
    model: str | None = None
    request_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("request_id", "requestId"),
    )


class HelloRequest(BaseModel):
    """Inbound greeting used by clients to check the connection."""

    model_config = {"frozen": True}

    text: str = ""


class Fragment(Event):
    """Streaming text fragment for real-time display."""

    name: ClassVar[str] = "fragment"

    request_id: str | None = None
    text: str


class CompletionEnd(Event):
    """Signals the completion finished normally."""

    name: ClassVar[str] = "completion_end"

    request_id: str | None = None


class CompletionError(Event):
    """Terminal failure of a completion. Fragments already sent stay valid."""

    name: ClassVar[str] = "completion_error"

    request_id: str | None = None
    code: str
    message: str


class CompletionRejected(Event):
    """A request was refused without touching any in-flight stream."""

    name: ClassVar[str] = "completion_rejected"

    request_id: str | None = None
    code: str
    message: str


class HelloReply(Event):
    """Reply to a hello greeting."""

    name: ClassVar[str] = "hello"

    text: str

    def to_message(self) -> dict[str, Any]:
        return {"event": self.name, "data": self.text}
