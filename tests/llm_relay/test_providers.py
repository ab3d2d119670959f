"""Tests for the LiteLLM-backed provider adapters."""

import logging
from collections.abc import AsyncIterator
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from llm_relay.config import RelaySettings
from llm_relay.errors import MissingAPIKeyError, ProviderUnavailable, StreamInterrupted
from llm_relay.mocks import text_chunks
from llm_relay.params import DEFAULT_PARAMETERS, CompletionParameters
from llm_relay.protocols import ChatMessage, ProviderId
from llm_relay.providers import (
    PROVIDER_SPECS,
    ProviderAdapter,
    build_adapters,
    build_messages,
)


class FakeResponse:
    """Stand-in for LiteLLM's streaming response wrapper."""

    def __init__(self, chunks: list[Any], error: Exception | None = None) -> None:
        self._chunks = chunks
        self._error = error
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[Any]:
        for chunk in self._chunks:
            yield chunk
        if self._error is not None:
            raise self._error

    async def aclose(self) -> None:
        self.closed = True


class UncloseableResponse:
    """Streaming response without a cancellation hook."""

    async def __aiter__(self) -> AsyncIterator[Any]:
        for chunk in text_chunks(["a"]):
            yield chunk


def _adapter(
    provider: ProviderId = ProviderId.DEEPSEEK, api_key: str | None = "sk-test"
) -> ProviderAdapter:
    return ProviderAdapter(PROVIDER_SPECS[provider], api_key)


CONVERSATION = [
    ChatMessage(role="system", content="Caller system turn"),
    ChatMessage(role="user", content="Hi"),
]


class TestProviderSpecs:
    """Tests for the built-in provider set."""

    def test_deepseek(self) -> None:
        spec = PROVIDER_SPECS[ProviderId.DEEPSEEK]
        assert spec.api_base == "https://api.deepseek.com"
        assert spec.default_model == "deepseek-chat"
        assert spec.api_key_env == "DEEPSEEK_API_KEY"

    def test_deepinfra(self) -> None:
        spec = PROVIDER_SPECS[ProviderId.DEEPINFRA]
        assert spec.api_base == "https://api.deepinfra.com/v1/openai"
        assert spec.default_model == "google/gemma-2-9b-it"
        assert spec.api_key_env == "DEEPINFRA_API_KEY"

    def test_every_provider_has_a_spec(self) -> None:
        assert set(PROVIDER_SPECS) == set(ProviderId)


class TestBuildMessages:
    """Tests for build_messages."""

    def test_system_prompt_is_always_first(self) -> None:
        messages = build_messages("You are helpful.", CONVERSATION)

        assert messages == [
            {"role": "system", "content": "You are helpful."},
            {"role": "system", "content": "Caller system turn"},
            {"role": "user", "content": "Hi"},
        ]

    def test_empty_conversation(self) -> None:
        assert build_messages("sys", []) == [{"role": "system", "content": "sys"}]


class TestOpenStream:
    """Tests for ProviderAdapter.open_stream."""

    @pytest.mark.asyncio
    async def test_request_kwargs(self) -> None:
        response = FakeResponse(text_chunks(["Hi"]))
        with patch(
            "llm_relay.providers.litellm.acompletion", new=AsyncMock(return_value=response)
        ) as mock_completion:
            await _adapter().open_stream("You are helpful.", CONVERSATION, DEFAULT_PARAMETERS)

        kwargs = mock_completion.call_args.kwargs
        assert kwargs["model"] == "deepseek-chat"
        assert kwargs["stream"] is True
        assert kwargs["api_base"] == "https://api.deepseek.com"
        assert kwargs["api_key"] == "sk-test"
        assert kwargs["custom_llm_provider"] == "openai"
        assert kwargs["num_retries"] == 0
        assert kwargs["messages"][0] == {"role": "system", "content": "You are helpful."}
        assert kwargs["top_p"] == 1.0
        assert kwargs["max_tokens"] == 512
        assert kwargs["stop"] == "\n"
        assert kwargs["temperature"] == 0.7

    @pytest.mark.asyncio
    async def test_model_and_parameter_overrides(self) -> None:
        parameters = CompletionParameters(top_p=0.5, max_tokens=10, stop=["END"], temperature=0.1)
        with patch(
            "llm_relay.providers.litellm.acompletion",
            new=AsyncMock(return_value=FakeResponse([])),
        ) as mock_completion:
            await _adapter(ProviderId.DEEPINFRA).open_stream(
                "sys", [], parameters, model="meta-llama/Llama-3-8b"
            )

        kwargs = mock_completion.call_args.kwargs
        assert kwargs["model"] == "meta-llama/Llama-3-8b"
        assert kwargs["api_base"] == "https://api.deepinfra.com/v1/openai"
        assert kwargs["stop"] == ["END"]
        assert kwargs["max_tokens"] == 10

    @pytest.mark.asyncio
    async def test_missing_credential_fails_without_network(self) -> None:
        mock_completion = AsyncMock()
        with patch("llm_relay.providers.litellm.acompletion", new=mock_completion):
            with pytest.raises(ProviderUnavailable, match="DEEPSEEK_API_KEY") as exc_info:
                await _adapter(api_key=None).open_stream("sys", [], DEFAULT_PARAMETERS)

        assert isinstance(exc_info.value.cause, MissingAPIKeyError)
        mock_completion.assert_not_called()

    @pytest.mark.asyncio
    async def test_connection_failure_is_provider_unavailable(self) -> None:
        error = ConnectionRefusedError("refused")
        with patch(
            "llm_relay.providers.litellm.acompletion", new=AsyncMock(side_effect=error)
        ):
            with pytest.raises(ProviderUnavailable) as exc_info:
                await _adapter().open_stream("sys", [], DEFAULT_PARAMETERS)

        assert exc_info.value.cause is error
        assert exc_info.value.code == "provider_unavailable"


class TestProviderStream:
    """Tests for iterating and closing the stream handle."""

    @pytest.mark.asyncio
    async def test_yields_raw_chunks(self) -> None:
        chunks = text_chunks(["Hel", "lo"])
        with patch(
            "llm_relay.providers.litellm.acompletion",
            new=AsyncMock(return_value=FakeResponse(chunks)),
        ):
            stream = await _adapter().open_stream("sys", [], DEFAULT_PARAMETERS)

        assert [chunk async for chunk in stream] == chunks

    @pytest.mark.asyncio
    async def test_mid_stream_failure_is_stream_interrupted(self) -> None:
        response = FakeResponse(text_chunks(["A"]), error=RuntimeError("socket closed"))
        with patch(
            "llm_relay.providers.litellm.acompletion", new=AsyncMock(return_value=response)
        ):
            stream = await _adapter().open_stream("sys", [], DEFAULT_PARAMETERS)

        received: list[Any] = []
        with pytest.raises(StreamInterrupted, match="socket closed"):
            async for chunk in stream:
                received.append(chunk)
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_aclose_releases_upstream(self) -> None:
        response = FakeResponse(text_chunks(["A"]))
        with patch(
            "llm_relay.providers.litellm.acompletion", new=AsyncMock(return_value=response)
        ):
            stream = await _adapter().open_stream("sys", [], DEFAULT_PARAMETERS)

        await stream.aclose()
        await stream.aclose()

        assert response.closed
        assert stream.closed

    @pytest.mark.asyncio
    async def test_aclose_without_cancel_hook(self) -> None:
        with patch(
            "llm_relay.providers.litellm.acompletion",
            new=AsyncMock(return_value=UncloseableResponse()),
        ):
            stream = await _adapter().open_stream("sys", [], DEFAULT_PARAMETERS)

        await stream.aclose()
        assert stream.closed
        assert [chunk async for chunk in stream] == []


class TestStartStream:
    """Tests for the one-step start_stream generator."""

    @pytest.mark.asyncio
    async def test_yields_chunks_and_closes(self) -> None:
        response = FakeResponse(text_chunks(["a", "b"]))
        with patch(
            "llm_relay.providers.litellm.acompletion", new=AsyncMock(return_value=response)
        ):
            chunks = [
                chunk
                async for chunk in _adapter().start_stream("sys", [], DEFAULT_PARAMETERS)
            ]

        assert len(chunks) == 2
        assert response.closed

    @pytest.mark.asyncio
    async def test_failure_is_raised_not_empty(self) -> None:
        with patch(
            "llm_relay.providers.litellm.acompletion",
            new=AsyncMock(side_effect=PermissionError("401 Unauthorized")),
        ):
            with pytest.raises(ProviderUnavailable, match="401"):
                async for _ in _adapter().start_stream("sys", [], DEFAULT_PARAMETERS):
                    pass


class TestBuildAdapters:
    """Tests for build_adapters."""

    def test_one_adapter_per_provider(self) -> None:
        adapters = build_adapters(RelaySettings(deepseek_api_key="sk-1"))

        assert set(adapters) == set(ProviderId)
        assert adapters[ProviderId.DEEPSEEK].has_credentials
        assert not adapters[ProviderId.DEEPINFRA].has_credentials

    def test_missing_credentials_are_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="llm_relay.providers"):
            build_adapters(RelaySettings())

        assert "DEEPSEEK_API_KEY" in caplog.text
        assert "DEEPINFRA_API_KEY" in caplog.text
