"""Replay a finished answer as an OpenAI chat.completion.chunk event stream."""

import asyncio
import json as json_mod
import logging
import re
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum
from time import time
from typing import Any

from writecream_gateway.metrics import record_stream_chunks
from writecream_gateway.models.openai import ChatCompletionChunk, ChunkChoice, ChunkDelta

logger = logging.getLogger("wcg.stream")

DEFAULT_CHUNK_DELAY_S = 0.02
DONE_FRAME = b"data: [DONE]\n\n"

_WHITESPACE_RUN = re.compile(r"(\s+)")

DisconnectProbe = Callable[[], Awaitable[bool]]


class StreamState(Enum):
    IDLE = "idle"
    EMITTING = "emitting"
    FINISHING = "finishing"
    CLOSED = "closed"


def tokenize(text: str) -> list[str]:
    """Split into words and whitespace runs; joining the result gives back ``text``."""
    return [piece for piece in _WHITESPACE_RUN.split(text) if piece]


def build_chunk(
    request_id: str,
    model: str,
    content: str | None = None,
    finish_reason: str | None = None,
) -> dict[str, Any]:
    chunk = ChatCompletionChunk(
        id=request_id,
        created=int(time()),
        model=model,
        choices=[
            ChunkChoice(
                index=0,
                delta=ChunkDelta(content=content),
                finish_reason=finish_reason,
            )
        ],
    )
    return chunk.to_wire()


def sse_event(payload: dict[str, Any]) -> bytes:
    body = json_mod.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    return f"data: {body}\n\n".encode()


class PseudoStream:
    """Single-use async iterable of SSE frames for one completion.

    Every token becomes one content chunk followed by a pacing sleep, then a
    terminal ``finish_reason="stop"`` chunk and the ``[DONE]`` sentinel. If the
    client goes away the stream closes early and neither of those is sent.
    """

    def __init__(
        self,
        text: str,
        request_id: str,
        model: str,
        *,
        delay_s: float = DEFAULT_CHUNK_DELAY_S,
        is_disconnected: DisconnectProbe | None = None,
    ):
        self._tokens = tokenize(text)
        self._request_id = request_id
        self._model = model
        self._delay_s = delay_s
        self._is_disconnected = is_disconnected
        self.state = StreamState.IDLE
        self.chunk_count = 0
        self.completed = False

    def __aiter__(self) -> AsyncIterator[bytes]:
        if self.state is not StreamState.IDLE:
            raise RuntimeError("pseudo stream can only be consumed once")
        self.state = StreamState.EMITTING
        return self._frames()

    async def _client_gone(self) -> bool:
        if self._is_disconnected is None:
            return False
        return await self._is_disconnected()

    async def _frames(self) -> AsyncIterator[bytes]:
        try:
            for token in self._tokens:
                if await self._client_gone():
                    logger.info(
                        "chat_stream_client_disconnected",
                        extra={"request_id": self._request_id, "chunk_count": self.chunk_count},
                    )
                    return
                yield sse_event(build_chunk(self._request_id, self._model, content=token))
                self.chunk_count += 1
                await asyncio.sleep(self._delay_s)

            self.state = StreamState.FINISHING
            yield sse_event(build_chunk(self._request_id, self._model, finish_reason="stop"))
            yield DONE_FRAME
            self.completed = True
        finally:
            self.state = StreamState.CLOSED
            record_stream_chunks(self._model, self.chunk_count, self.completed)
            logger.info(
                "chat_stream_completed",
                extra={
                    "request_id": self._request_id,
                    "model": self._model,
                    "chunk_count": self.chunk_count,
                    "completed": self.completed,
                },
            )


def emit(
    text: str,
    request_id: str,
    model: str,
    *,
    delay_s: float = DEFAULT_CHUNK_DELAY_S,
    is_disconnected: DisconnectProbe | None = None,
) -> PseudoStream:
    return PseudoStream(
        text,
        request_id,
        model,
        delay_s=delay_s,
        is_disconnected=is_disconnected,
    )
