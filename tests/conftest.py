"""Shared pytest fixtures for relay tests.

Provides event recorders, stub adapters and environment isolation.
"""

import asyncio
from collections.abc import Callable

import pytest

from llm_relay.events import CompletionRequest, Event
from llm_relay.mocks import StubAdapter
from llm_relay.protocols import ProviderId

RELAY_ENV_VARS = (
    "DEEPSEEK_API_KEY",
    "DEEPINFRA_API_KEY",
    "SOCKETIO_PORT",
    "RELAY_PORT",
    "RELAY_HOST",
    "RELAY_LOG_LEVEL",
    "RELAY_CORS_ALLOW_ORIGINS",
)


class EventRecorder:
    """Async emit callable that records outbound events."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    async def __call__(self, event: Event) -> None:
        self.events.append(event)

    @property
    def names(self) -> list[str]:
        return [event.name for event in self.events]

    @property
    def texts(self) -> list[str]:
        return [event.text for event in self.events if event.name == "fragment"]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host credentials and ports out of the tests."""
    for name in RELAY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def hello_stub() -> StubAdapter:
    """Stub provider that streams "Hel", "lo" and ends."""
    return StubAdapter.from_texts(["Hel", "lo"])


@pytest.fixture
def make_request() -> Callable[..., CompletionRequest]:
    """Factory for completion requests against the DeepSeek slot."""

    def _make(**overrides: object) -> CompletionRequest:
        data: dict[str, object] = {
            "provider": ProviderId.DEEPSEEK,
            "system_prompt": "You are helpful.",
            "conversation": [{"role": "user", "content": "Hi"}],
        }
        data.update(overrides)
        return CompletionRequest.model_validate(data)

    return _make


@pytest.fixture
def wait_until() -> Callable[..., object]:
    """Poll a predicate on the running loop until it holds."""

    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.005)

    return _wait
