from fastapi import APIRouter, Request, Response
from fastapi.responses import StreamingResponse

from writecream_gateway.models.openai import ChatCompletionResponse, ModelList
from writecream_gateway.services.chat_service import TRACE_HEADER, ChatService

router = APIRouter()


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/v1/models", response_model=ModelList)
def list_models(request: Request) -> ModelList:
    service: ChatService = request.app.state.chat_service
    return service.list_models()


@router.post(
    "/v1/chat/completions",
    response_model=ChatCompletionResponse,
)
async def chat_completions(
    request: Request, response: Response
) -> ChatCompletionResponse | StreamingResponse:
    service: ChatService = request.app.state.chat_service
    result = await service.handle_chat(request)
    if isinstance(result, ChatCompletionResponse):
        response.headers[TRACE_HEADER] = request.state.request_id
    return result
