import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from writecream_gateway.api.routes import router
from writecream_gateway.config.settings import Settings, get_settings
from writecream_gateway.core.errors import AppError, app_error_response, request_id_from_request
from writecream_gateway.core.logging import configure_logging
from writecream_gateway.metrics import metrics_router
from writecream_gateway.middleware.auth import AuthMiddleware
from writecream_gateway.middleware.request_id import RequestIDMiddleware
from writecream_gateway.providers.base import UpstreamProvider
from writecream_gateway.providers.writecream import WritecreamProvider
from writecream_gateway.services.chat_service import ChatService

logger = logging.getLogger("wcg.app")

HTTP_ERROR_CODES = {404: "not_found", 405: "method_not_allowed"}


def _build_provider(settings: Settings) -> UpstreamProvider:
    return WritecreamProvider(
        upstream_url=settings.upstream_url,
        upstream_origin=settings.upstream_origin,
        link=settings.upstream_link,
        user_agent=settings.upstream_user_agent,
        timeout_s=settings.upstream_timeout_s,
    )


def create_app(
    settings: Settings | None = None,
    provider: UpstreamProvider | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Writecream Gateway", version="1.1.0")
    app.state.settings = settings

    # last added runs first: CORS, then request id, then auth
    app.add_middleware(AuthMiddleware, settings=settings)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        expose_headers=["x-request-id", "X-Server-Trace-ID"],
    )

    app.state.chat_service = ChatService(
        settings=settings,
        provider=provider or _build_provider(settings),
    )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        request_id = request_id_from_request(request)
        return app_error_response(
            exc.status_code, exc.code, exc.message, request_id, exc.error_type
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        request_id = request_id_from_request(request)
        code = HTTP_ERROR_CODES.get(exc.status_code, "http_error")
        if exc.status_code == 404:
            message = f"Path not found: {request.url.path}"
        elif exc.status_code == 405:
            message = "Method not allowed"
        else:
            message = str(exc.detail)
        return app_error_response(exc.status_code, code, message, request_id)

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        request_id = request_id_from_request(request)
        return app_error_response(
            500, "internal_server_error", f"Internal Server Error: {exc}", request_id
        )

    @app.exception_handler(Exception)
    async def unhandled_handler(request: Request, exc: Exception) -> JSONResponse:
        request_id = request_id_from_request(request)
        logger.exception("unhandled_exception", extra={"request_id": request_id})
        return app_error_response(
            500, "internal_server_error", f"Internal Server Error: {exc}", request_id
        )

    app.include_router(router)
    if settings.metrics_enabled:
        app.include_router(metrics_router)
    logger.info(
        "gateway_configured upstream=%s models=%s auth_enabled=%s",
        settings.upstream_url,
        ",".join(settings.configured_models),
        settings.auth_enabled,
    )
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "writecream_gateway.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
