"""Error definitions for the completion relay.

Structured error hierarchy for differentiated handling. Every relay error
carries a stable ``code`` that is sent to clients in terminal or rejection
events.
"""


class RelayError(Exception):
    """Base exception for all relay errors."""

    code = "relay_error"

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class ProviderUnavailable(RelayError):
    """Upstream provider could not be reached or rejected the request."""

    code = "provider_unavailable"


class StreamInterrupted(RelayError):
    """Upstream stream was established but ended abnormally."""

    code = "stream_interrupted"


class SessionBusy(RelayError):
    """A completion is already streaming on this connection."""

    code = "session_busy"

    def __init__(self, connection_id: str):
        super().__init__(f"Connection {connection_id} already has an active stream")
        self.connection_id = connection_id


class MalformedChunk(RelayError):
    """Upstream chunk does not have the expected shape."""

    code = "malformed_chunk"


class InvalidRequest(RelayError):
    """Inbound client event could not be parsed."""

    code = "invalid_request"


class ConfigurationError(RelayError):
    """Configuration or setup errors."""

    code = "configuration_error"


class MissingAPIKeyError(ConfigurationError):
    """Fail-fast error for missing provider credentials."""

    def __init__(self, missing_keys: list[str]):
        self.missing_keys = missing_keys
        keys_str = ", ".join(missing_keys)
        super().__init__(f"Missing required API keys: {keys_str}")
