from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from fastapi import Request
from fastapi.responses import JSONResponse

API_ERROR_TYPE = "api_error"


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    request_id: str
    type: str = API_ERROR_TYPE

    def as_dict(self) -> dict[str, Any]:
        return {
            "error": {
                "message": self.message,
                "type": self.type,
                "code": self.code,
                "request_id": self.request_id,
            }
        }


class AppError(Exception):
    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        error_type: str = API_ERROR_TYPE,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.error_type = error_type


def request_id_from_request(request: Request) -> str:
    state_id = getattr(request.state, "request_id", None)
    return state_id or f"chatcmpl-{uuid4()}"


def app_error_response(
    status_code: int,
    code: str,
    message: str,
    request_id: str,
    error_type: str = API_ERROR_TYPE,
) -> JSONResponse:
    envelope = ErrorEnvelope(code=code, message=message, request_id=request_id, type=error_type)
    response = JSONResponse(status_code=status_code, content=envelope.as_dict())
    response.headers["x-request-id"] = request_id
    return response
