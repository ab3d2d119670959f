"""LLM Relay - stream completions from multiple providers to realtime clients.

This package provides:
- Providers: One adapter per OpenAI-compatible completion provider
- Params: Merging of caller overrides with provider defaults
- Normalizer: Uniform text fragments from provider chunk streams
- Session: Per-connection relay with a one-stream-at-a-time guarantee
- Gateway: FastAPI WebSocket transport and operational endpoints
"""

__version__ = "0.1.0"

# Re-export commonly used items at package level
from llm_relay.errors import (
    ConfigurationError,
    InvalidRequest,
    MalformedChunk,
    MissingAPIKeyError,
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
from llm_relay.normalizer import extract_content, normalize_stream
from llm_relay.params import (
    DEFAULT_PARAMETERS,
    CompletionParameters,
    ParameterOverrides,
    resolve_parameters,
)
from llm_relay.protocols import ChatMessage, CompletionAdapter, ProviderId
from llm_relay.session import RelaySession, SessionState

__all__ = [
    # Protocols
    "ChatMessage",
    "CompletionAdapter",
    "ProviderId",
    # Parameters
    "DEFAULT_PARAMETERS",
    "CompletionParameters",
    "ParameterOverrides",
    "resolve_parameters",
    # Streaming
    "extract_content",
    "normalize_stream",
    "RelaySession",
    "SessionState",
    # Events
    "CompletionEnd",
    "CompletionError",
    "CompletionRejected",
    "CompletionRequest",
    "Event",
    "Fragment",
    # Errors
    "ConfigurationError",
    "InvalidRequest",
    "MalformedChunk",
    "MissingAPIKeyError",
    "ProviderUnavailable",
    "RelayError",
    "SessionBusy",
    "StreamInterrupted",
]
