"""Provider adapters for OpenAI-compatible streaming completions.

Each supported provider is described by a ``ProviderSpec``. A single
``ProviderAdapter`` implementation serves every spec through LiteLLM, so
adding a provider means adding a spec, not a subclass.
"""

import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any

import litellm

from llm_relay.config import RelaySettings
from llm_relay.errors import MissingAPIKeyError, ProviderUnavailable, RelayError, StreamInterrupted
from llm_relay.params import DEFAULT_PARAMETERS, CompletionParameters
from llm_relay.protocols import ChatMessage, ProviderId

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderSpec:
    """Static description of one upstream provider."""

    provider_id: ProviderId
    api_base: str
    default_model: str
    api_key_env: str
    default_parameters: CompletionParameters = field(default=DEFAULT_PARAMETERS)


PROVIDER_SPECS: dict[ProviderId, ProviderSpec] = {
    ProviderId.DEEPSEEK: ProviderSpec(
        provider_id=ProviderId.DEEPSEEK,
        api_base="https://api.deepseek.com",
        default_model="deepseek-chat",
        api_key_env="DEEPSEEK_API_KEY",
    ),
    ProviderId.DEEPINFRA: ProviderSpec(
        provider_id=ProviderId.DEEPINFRA,
        api_base="https://api.deepinfra.com/v1/openai",
        default_model="google/gemma-2-9b-it",
        api_key_env="DEEPINFRA_API_KEY",
    ),
}


def build_messages(
    system_prompt: str, conversation: Sequence[ChatMessage]
) -> list[dict[str, Any]]:
    """Build the upstream message list with the system prompt always first."""
    return [
        {"role": "system", "content": system_prompt},
        *(message.model_dump() for message in conversation),
    ]


class ProviderStream:
    """Handle on an established upstream stream.

    Iterates the raw provider chunks and exposes ``aclose`` as the
    cancellation hook. When the underlying response has no close method,
    closing only marks the handle; the upstream call then runs to completion
    and its output is discarded by the caller.
    """

    def __init__(self, response: Any, provider_id: ProviderId):
        self._response = response
        self._provider_id = provider_id
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aiter__(self) -> AsyncIterator[Any]:
        try:
            async for chunk in self._response:
                if self._closed:
                    break
                yield chunk
        except RelayError:
            raise
        except Exception as e:
            raise StreamInterrupted(
                f"{self._provider_id.value} stream failed: {e}", cause=e
            ) from e

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True

        close = getattr(self._response, "aclose", None)
        if close is None:
            logger.debug(
                "relay.stream.no_cancel_hook",
                extra={"provider": self._provider_id.value},
            )
            return
        try:
            await close()
        except Exception as e:
            logger.warning(
                "relay.stream.close_failed",
                extra={"provider": self._provider_id.value, "error": str(e)[:200]},
            )


class ProviderAdapter:
    """Streaming completion client for one provider.

    Immutable after construction and safe to share between connections:
    every call builds its own request and stream handle.
    """

    def __init__(self, spec: ProviderSpec, api_key: str | None = None):
        """Initialize the adapter.

        Args:
            spec: Static provider description.
            api_key: Provider credential. When missing, every call fails
                with ProviderUnavailable instead of reaching the network.
        """
        self._spec = spec
        self._api_key = api_key

    @property
    def provider_id(self) -> ProviderId:
        return self._spec.provider_id

    @property
    def default_model(self) -> str:
        return self._spec.default_model

    @property
    def default_parameters(self) -> CompletionParameters:
        return self._spec.default_parameters

    @property
    def has_credentials(self) -> bool:
        return bool(self._api_key)

    def _build_completion_kwargs(
        self,
        messages: list[dict[str, Any]],
        model: str,
        parameters: CompletionParameters,
    ) -> dict[str, Any]:
        """Build kwargs for litellm.acompletion."""
        return {
            "model": model,
            "messages": messages,
            "stream": True,
            "custom_llm_provider": "openai",
            "api_base": self._spec.api_base,
            "api_key": self._api_key,
            "num_retries": 0,
            **parameters.as_request_kwargs(),
        }

    async def open_stream(
        self,
        system_prompt: str,
        conversation: Sequence[ChatMessage],
        parameters: CompletionParameters,
        model: str | None = None,
    ) -> ProviderStream:
        """Open a streaming chat completion.

        Args:
            system_prompt: Prepended as the first upstream message.
            conversation: Prior turns in order.
            parameters: Fully resolved generation parameters.
            model: Model name; the provider default when omitted.

        Returns:
            Handle over the raw provider chunks.

        Raises:
            ProviderUnavailable: If the credential is missing or the request
                cannot be established.
        """
        if not self._api_key:
            missing = MissingAPIKeyError([self._spec.api_key_env])
            raise ProviderUnavailable(
                f"{self.provider_id.value} is not configured: {missing}", cause=missing
            )

        model = model or self._spec.default_model
        kwargs = self._build_completion_kwargs(
            build_messages(system_prompt, conversation), model, parameters
        )

        try:
            response = await litellm.acompletion(**kwargs)
        except Exception as e:
            logger.warning(
                "relay.stream.open_failed",
                extra={"provider": self.provider_id.value, "model": model, "error": str(e)[:200]},
            )
            raise ProviderUnavailable(
                f"{self.provider_id.value} completion request failed: {e}", cause=e
            ) from e

        logger.info(
            "relay.stream.open",
            extra={"provider": self.provider_id.value, "model": model},
        )
        return ProviderStream(response, self.provider_id)

    async def start_stream(
        self,
        system_prompt: str,
        conversation: Sequence[ChatMessage],
        parameters: CompletionParameters,
        model: str | None = None,
    ) -> AsyncIterator[Any]:
        """Yield raw provider chunks for one completion.

        One-step form of ``open_stream``; the upstream stream is released when
        the generator finishes or is closed.
        """
        stream = await self.open_stream(system_prompt, conversation, parameters, model)
        try:
            async for chunk in stream:
                yield chunk
        finally:
            await stream.aclose()


def build_adapters(settings: RelaySettings) -> dict[ProviderId, ProviderAdapter]:
    """Create one process-wide adapter per known provider."""
    adapters: dict[ProviderId, ProviderAdapter] = {}
    for provider_id, spec in PROVIDER_SPECS.items():
        api_key = settings.api_key_for(provider_id)
        if not api_key:
            logger.warning(
                "Provider %s has no credential; set %s",
                provider_id.value,
                spec.api_key_env,
            )
        adapters[provider_id] = ProviderAdapter(spec, api_key)
    return adapters
