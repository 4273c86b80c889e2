"""Flatten an upstream reply into a single assistant answer.

The upstream has answered in several shapes over time:

* a custom envelope ``{"data": {"response_content": "..."}}``
* an OpenAI-style completion ``{"choices": [{"message": {"content": "..."}}]}``
* raw event-stream text, one ``data: {...}`` chunk per line, even for a
  single synchronous answer

Decoders are tried in order and the first one that yields text wins. None of
them branch on an upstream version; unknown shapes simply fall through.
"""

import json
import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger("wcg.normalizer")

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class ExtractionError(Exception):
    """No decoder could pull a non-empty answer out of the upstream body."""

    def __init__(self, message: str = "Upstream response format not recognized or empty"):
        super().__init__(message)
        self.message = message


def _first_choice(payload: dict[str, Any]) -> dict[str, Any] | None:
    choices = payload.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        return choices[0]
    return None


def _nested_str(container: Any, key: str) -> str | None:
    if not isinstance(container, dict):
        return None
    value = container.get(key)
    if isinstance(value, str) and value:
        return value
    return None


def structured_decode(body: str) -> str | None:
    try:
        payload = json.loads(body)
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None

    envelope_text = _nested_str(payload.get("data"), "response_content")
    if envelope_text is not None:
        logger.debug("upstream_shape_matched", extra={"shape": "envelope"})
        return envelope_text

    choice = _first_choice(payload)
    if choice is not None:
        message_text = _nested_str(choice.get("message"), "content")
        if message_text is not None:
            logger.debug("upstream_shape_matched", extra={"shape": "openai"})
            return message_text
    return None


def parse_line_or_skip(line: str) -> dict[str, Any] | None:
    """Decode one event-stream line; anything unparseable yields ``None``."""
    text = line.strip()
    if not text:
        return None
    if text.startswith(DATA_PREFIX):
        text = text.removeprefix(DATA_PREFIX).strip()
    if not text or text == DONE_SENTINEL:
        return None
    try:
        parsed = json.loads(text)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def line_salvage_decode(body: str) -> str | None:
    parts: list[str] = []
    # only "\n" delimits lines; U+2028 may appear inside JSON strings
    for line in body.split("\n"):
        chunk = parse_line_or_skip(line)
        if chunk is None:
            continue
        choice = _first_choice(chunk)
        if choice is None:
            continue
        fragment = _nested_str(choice.get("delta"), "content")
        if fragment is not None:
            parts.append(fragment)

    if not parts:
        return None
    logger.debug("upstream_shape_matched", extra={"shape": "sse"})
    return "".join(parts)


DECODERS: tuple[Callable[[str], str | None], ...] = (structured_decode, line_salvage_decode)


def normalize(raw_body: bytes | str) -> str:
    body = (
        raw_body.decode("utf-8", errors="replace")
        if isinstance(raw_body, bytes)
        else raw_body
    )
    for decoder in DECODERS:
        answer = decoder(body)
        if answer:
            return answer
    raise ExtractionError()
