from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from writecream_gateway.config.settings import Settings
from writecream_gateway.core.errors import app_error_response, request_id_from_request

PROTECTED_PREFIX = "/v1/"


class AuthMiddleware(BaseHTTPMiddleware):
    """Bearer-token gate for the /v1/ surface.

    A master key equal to the open-access sentinel disables the check entirely.
    """

    def __init__(self, app: ASGIApp, settings: Settings):
        super().__init__(app)
        self._settings = settings

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.method == "OPTIONS" or not request.url.path.startswith(PROTECTED_PREFIX):
            return await call_next(request)
        if not self._settings.auth_enabled:
            return await call_next(request)

        request_id = request_id_from_request(request)
        auth_header = request.headers.get("authorization", "")
        if not auth_header.startswith("Bearer "):
            return app_error_response(
                401, "unauthorized", "Unauthorized: Missing Bearer Token.", request_id
            )

        token = auth_header.removeprefix("Bearer ")
        if token != self._settings.api_master_key:
            return app_error_response(
                403, "invalid_api_key", "Forbidden: Invalid API Key.", request_id
            )
        return await call_next(request)
