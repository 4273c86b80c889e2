import json

import pytest

from writecream_gateway.services.normalizer import (
    ExtractionError,
    line_salvage_decode,
    normalize,
    parse_line_or_skip,
    structured_decode,
)


def _sse(*fragments: str, done: bool = True) -> str:
    lines = [
        "data: " + json.dumps({"choices": [{"delta": {"content": fragment}}]})
        for fragment in fragments
    ]
    if done:
        lines.append("data: [DONE]")
    return "\n\n".join(lines) + "\n\n"


def test_envelope_shape_returns_response_content() -> None:
    body = json.dumps({"success": True, "data": {"response_content": "Hi  there\n"}})
    assert normalize(body.encode()) == "Hi  there\n"


def test_openai_shape_returns_message_content() -> None:
    body = {"choices": [{"index": 0, "message": {"role": "assistant", "content": "Sure."}}]}
    assert normalize(json.dumps(body)) == "Sure."


def test_envelope_wins_over_choices() -> None:
    body = {
        "data": {"response_content": "from envelope"},
        "choices": [{"message": {"content": "from choices"}}],
    }
    assert normalize(json.dumps(body)) == "from envelope"


def test_empty_envelope_falls_through_to_choices() -> None:
    body = {"data": {"response_content": ""}, "choices": [{"message": {"content": "ok"}}]}
    assert normalize(json.dumps(body)) == "ok"


def test_sse_example_is_concatenated() -> None:
    body = (
        'data: {"choices":[{"delta":{"content":"Hel"}}]}\n\n'
        'data: {"choices":[{"delta":{"content":"lo"}}]}\n\n'
        "data: [DONE]\n\n"
    )
    assert normalize(body.encode()) == "Hello"


def test_sse_skips_malformed_and_partial_lines() -> None:
    body = (
        _sse("Good", " ", done=False)
        + 'data: {"choices":[{"delta":{"content":"trunc\n'
        + "not json at all\n"
        + _sse("morning")
    )
    assert normalize(body) == "Good morning"


def test_sse_accepts_bare_json_lines_and_compact_prefix() -> None:
    body = (
        '{"id":"a","choices":[{"delta":{"role":"assistant","content":"one"}}]}\n'
        'data:{"choices":[{"delta":{"content":" two"}}]}\r\n'
        "data:[DONE]\r\n"
    )
    assert normalize(body) == "one two"


def test_sse_ignores_chunks_without_content() -> None:
    body = _sse("a", done=False) + 'data: {"choices":[{"delta":{},"finish_reason":"stop"}]}\n\n'
    assert normalize(body) == "a"


def test_line_separator_inside_content_is_preserved() -> None:
    body = 'data: {"choices":[{"delta":{"content":"first\u2028second"}}]}\n\ndata: [DONE]\n\n'
    assert normalize(body) == "first\u2028second"


def test_invalid_utf8_is_replaced_not_fatal() -> None:
    body = b'{"data":{"response_content":"caf\xff"}}'
    assert normalize(body) == "caf\ufffd"


@pytest.mark.parametrize(
    "body",
    [
        "",
        "   \n\n",
        "{}",
        '{"data": {"other": 1}}',
        '{"choices": []}',
        '{"choices": [{"message": {"content": 42}}]}',
        "[1, 2, 3]",
        "null",
        "data: [DONE]\n\n",
        "<html>upstream maintenance</html>",
    ],
)
def test_unrecognized_bodies_raise(body: str) -> None:
    with pytest.raises(ExtractionError, match="not recognized or empty"):
        normalize(body)


def test_structured_decode_returns_none_on_syntax_error() -> None:
    assert structured_decode("data: {}") is None


def test_line_salvage_returns_none_when_nothing_accumulated() -> None:
    assert line_salvage_decode('{"unrelated": true}') is None


def test_parse_line_or_skip() -> None:
    assert parse_line_or_skip('data: {"a": 1}') == {"a": 1}
    assert parse_line_or_skip("data: [DONE]") is None
    assert parse_line_or_skip("data: {broken") is None
    assert parse_line_or_skip("data: [1]") is None
    assert parse_line_or_skip("   ") is None
