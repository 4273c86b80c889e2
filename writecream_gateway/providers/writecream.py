"""HTTP client for the Writecream chat endpoint."""

import json
import logging
from time import perf_counter
from typing import Any

import httpx

from writecream_gateway.metrics import inc_counter
from writecream_gateway.providers.base import ProviderError

logger = logging.getLogger("wcg.upstream")

GENERATE_ACTION = "generate_chat"
ERROR_PREVIEW_CHARS = 200


class WritecreamProvider:
    """Sends one form-encoded POST per chat turn and returns the raw body."""

    name = "writecream"

    def __init__(
        self,
        upstream_url: str,
        upstream_origin: str,
        *,
        link: str = "writecream.com",
        user_agent: str,
        timeout_s: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._url = upstream_url
        self._origin = upstream_origin.rstrip("/")
        self._link = link
        self._user_agent = user_agent
        self._timeout = timeout_s
        self._transport = transport

    def build_form(self, messages: list[dict[str, Any]]) -> dict[str, str]:
        return {
            "action": GENERATE_ACTION,
            "query": json.dumps(messages, ensure_ascii=False),
            "link": self._link,
        }

    def build_headers(self, request_id: str) -> dict[str, str]:
        return {
            "Accept": "*/*",
            "Origin": self._origin,
            "Referer": f"{self._origin}/ai-chat/",
            "User-Agent": self._user_agent,
            "X-Request-ID": request_id,
        }

    async def generate(self, messages: list[dict[str, Any]], request_id: str) -> bytes:
        started = perf_counter()
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.post(
                    self._url,
                    data=self.build_form(messages),
                    headers=self.build_headers(request_id),
                )
        except httpx.TimeoutException as exc:
            inc_counter("wcg_upstream_requests_total", {"status": "timeout"})
            raise ProviderError(
                status_code=503,
                code="upstream_error",
                message=f"Upstream request timed out: {exc}",
            ) from exc
        except httpx.HTTPError as exc:
            inc_counter("wcg_upstream_requests_total", {"status": "connection_error"})
            raise ProviderError(
                status_code=502,
                code="upstream_error",
                message=f"Cannot reach upstream: {exc}",
            ) from exc

        inc_counter("wcg_upstream_requests_total", {"status": str(resp.status_code)})
        logger.info(
            "upstream_call",
            extra={
                "request_id": request_id,
                "upstream_status": resp.status_code,
                "latency_ms": round((perf_counter() - started) * 1000, 2),
            },
        )
        self._raise_for_status(resp, request_id)
        return resp.content

    @staticmethod
    def _raise_for_status(resp: httpx.Response, request_id: str) -> None:
        if resp.is_success:
            return
        logger.error(
            "upstream_error body=%s",
            resp.text[:ERROR_PREVIEW_CHARS],
            extra={"request_id": request_id, "upstream_status": resp.status_code},
        )
        # non-2xx below 400 has no meaningful client status of its own
        status = resp.status_code if resp.status_code >= 400 else 502
        raise ProviderError(
            status_code=status,
            code="upstream_error",
            message=f"Upstream error: {resp.status_code}",
        )
