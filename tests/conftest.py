import json
from collections.abc import Callable
from urllib.parse import parse_qs

import httpx
import pytest
from fastapi.testclient import TestClient

from writecream_gateway.config.settings import Settings, clear_settings_cache
from writecream_gateway.main import create_app
from writecream_gateway.metrics import reset_metrics
from writecream_gateway.providers.writecream import WritecreamProvider

UPSTREAM_URL = "https://upstream.test/wp-admin/admin-ajax.php"
UPSTREAM_ORIGIN = "https://upstream.test"


class FakeUpstream:
    """Records outbound calls and answers with a canned body."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.body: bytes = json.dumps({"data": {"response_content": "Hello from upstream"}}).encode()
        self.error: Exception | None = None

    def respond(self, body: bytes | str | dict[str, object], status_code: int = 200) -> None:
        if isinstance(body, dict):
            body = json.dumps(body)
        if isinstance(body, str):
            body = body.encode()
        self.body = body
        self.status_code = status_code

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(status_code=self.status_code, content=self.body)

    @property
    def last_form(self) -> dict[str, str]:
        parsed = parse_qs(self.requests[-1].content.decode(), keep_blank_values=True)
        return {key: values[0] for key, values in parsed.items()}


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def make_provider(upstream: FakeUpstream) -> Callable[[], WritecreamProvider]:
    def _make() -> WritecreamProvider:
        return WritecreamProvider(
            upstream_url=UPSTREAM_URL,
            upstream_origin=UPSTREAM_ORIGIN,
            user_agent="test-agent/1.0",
            timeout_s=5.0,
            transport=httpx.MockTransport(upstream.handler),
        )

    return _make


@pytest.fixture
def make_client(
    monkeypatch: pytest.MonkeyPatch,
    make_provider: Callable[[], WritecreamProvider],
) -> Callable[..., TestClient]:
    for name in ("API_MASTER_KEY", "MODELS", "DEFAULT_MODEL", "STREAM_BY_DEFAULT"):
        monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    reset_metrics()

    def _make(**overrides: object) -> TestClient:
        values: dict[str, object] = {
            "upstream_url": UPSTREAM_URL,
            "upstream_origin": UPSTREAM_ORIGIN,
            "stream_chunk_delay_ms": 0,
        }
        values.update(overrides)
        settings = Settings(**values)
        return TestClient(create_app(settings=settings, provider=make_provider()))

    return _make


@pytest.fixture
def client(make_client: Callable[..., TestClient]) -> TestClient:
    return make_client()


@pytest.fixture
def chat_body() -> dict[str, object]:
    return {
        "model": "writecream-chat",
        "messages": [{"role": "user", "content": "hello"}],
    }
