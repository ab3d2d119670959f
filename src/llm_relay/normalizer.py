"""Normalize provider chunk streams into plain text fragments.

Providers deliver OpenAI-style chunks where the incremental text sits at
``choices[0].delta.content``. LiteLLM hands back attribute-style objects while
stubs and raw SSE payloads are plain dicts, so both shapes are accepted.
"""

import logging
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

from llm_relay.errors import MalformedChunk, RelayError, StreamInterrupted

logger = logging.getLogger(__name__)


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def extract_content(chunk: Any) -> str | None:
    """Return the delta content of a chunk, or None when it carries no text.

    Raises:
        StreamInterrupted: If the chunk is an upstream error payload.
        MalformedChunk: If the chunk does not have the expected shape.
    """
    if chunk is None:
        raise MalformedChunk("Chunk is empty")

    error = _field(chunk, "error")
    if error:
        raise StreamInterrupted(f"Provider reported an error mid-stream: {error}")

    choices = _field(chunk, "choices")
    if choices is None:
        raise MalformedChunk("Chunk has no choices")
    if not isinstance(choices, (list, tuple)):
        raise MalformedChunk(f"Chunk choices has unexpected type {type(choices).__name__}")
    if not choices:
        # usage-only trailer chunks have an empty choices list
        return None

    delta = _field(choices[0], "delta")
    if delta is None:
        raise MalformedChunk("Chunk choice has no delta")

    content = _field(delta, "content")
    if content is None:
        return None
    if not isinstance(content, str):
        raise MalformedChunk(f"Delta content has unexpected type {type(content).__name__}")
    return content


async def normalize_stream(chunks: AsyncIterable[Any]) -> AsyncIterator[str]:
    """Yield the non-empty text fragments of a chunk stream, in arrival order.

    One chunk yields at most one fragment; nothing is buffered or coalesced.
    Malformed chunks are skipped. The sequence ends when the upstream stream
    ends and cannot be restarted.

    Raises:
        StreamInterrupted: If the upstream iteration fails or reports an error.
    """
    skipped = 0
    iterator = aiter(chunks)
    while True:
        try:
            chunk = await anext(iterator)
        except StopAsyncIteration:
            break
        except RelayError:
            raise
        except Exception as e:
            raise StreamInterrupted(f"Provider stream failed: {e}", cause=e) from e

        try:
            content = extract_content(chunk)
        except MalformedChunk as e:
            skipped += 1
            logger.debug("relay.chunk.malformed", extra={"reason": e.message})
            continue

        if content:
            yield content

    if skipped:
        logger.info("relay.chunk.skipped", extra={"count": skipped})
