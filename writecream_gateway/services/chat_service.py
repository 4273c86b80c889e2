import json as json_mod
import logging
from time import perf_counter, time

from fastapi import Request
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from writecream_gateway.config.settings import Settings
from writecream_gateway.core.errors import AppError
from writecream_gateway.metrics import record_extraction_failure, record_request
from writecream_gateway.models.openai import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    Choice,
    ChoiceMessage,
    ModelCard,
    ModelList,
    Usage,
)
from writecream_gateway.providers.base import ProviderError, UpstreamProvider
from writecream_gateway.services.normalizer import ExtractionError, normalize
from writecream_gateway.services.pseudo_stream import PseudoStream

logger = logging.getLogger("wcg.chat")

MODEL_OWNER = "writecream-gateway"
RAW_PREVIEW_CHARS = 200
TRACE_HEADER = "X-Server-Trace-ID"


class ChatService:
    def __init__(self, settings: Settings, provider: UpstreamProvider):
        self._settings = settings
        self._provider = provider

    @staticmethod
    def parse_request(raw_body: bytes) -> ChatCompletionRequest:
        try:
            return ChatCompletionRequest.model_validate(json_mod.loads(raw_body))
        except (ValueError, ValidationError) as exc:
            raise AppError(500, "internal_server_error", f"Internal Server Error: {exc}") from exc

    def wants_stream(self, payload: ChatCompletionRequest) -> bool:
        if payload.stream is None:
            return self._settings.stream_by_default
        return payload.stream

    async def handle_chat(self, request: Request) -> ChatCompletionResponse | StreamingResponse:
        started = perf_counter()
        request_id: str = request.state.request_id
        endpoint = str(request.url.path)

        payload = self.parse_request(await request.body())
        model = payload.model or self._settings.default_model
        stream = self.wants_stream(payload)
        messages = [message.model_dump(exclude_unset=True) for message in payload.messages]

        try:
            raw_body = await self._provider.generate(messages, request_id)
        except ProviderError as exc:
            record_request(endpoint, model, exc.status_code, perf_counter() - started, stream)
            raise AppError(exc.status_code, exc.code, exc.message, exc.error_type) from exc

        try:
            answer = normalize(raw_body)
        except ExtractionError as exc:
            preview = raw_body[:RAW_PREVIEW_CHARS].decode("utf-8", errors="replace")
            logger.error(
                "upstream_extraction_failed preview=%r",
                preview,
                extra={"request_id": request_id, "model": model, "error_code": "bad_gateway"},
            )
            record_extraction_failure(model)
            record_request(endpoint, model, 502, perf_counter() - started, stream)
            raise AppError(502, "bad_gateway", exc.message) from exc

        latency_s = perf_counter() - started
        record_request(endpoint, model, 200, latency_s, stream)
        logger.info(
            "chat_completed",
            extra={
                "request_id": request_id,
                "model": model,
                "stream": stream,
                "answer_chars": len(answer),
                "latency_ms": round(latency_s * 1000, 2),
            },
        )

        if stream:
            frames = PseudoStream(
                answer,
                request_id,
                model,
                delay_s=self._settings.stream_chunk_delay_s,
                is_disconnected=request.is_disconnected,
            )
            return StreamingResponse(
                frames,
                media_type="text/event-stream; charset=utf-8",
                headers={
                    "Cache-Control": "no-cache",
                    "Connection": "keep-alive",
                    "X-Accel-Buffering": "no",
                    TRACE_HEADER: request_id,
                },
            )
        return self.build_completion(answer, request_id, model)

    @staticmethod
    def build_completion(answer: str, request_id: str, model: str) -> ChatCompletionResponse:
        return ChatCompletionResponse(
            id=request_id,
            created=int(time()),
            model=model,
            choices=[Choice(index=0, message=ChoiceMessage(content=answer))],
            usage=Usage(),
        )

    def list_models(self) -> ModelList:
        created = int(time())
        return ModelList(
            data=[
                ModelCard(id=model_id, created=created, owned_by=MODEL_OWNER)
                for model_id in self._settings.configured_models
            ]
        )
