from typing import Any, Protocol


class ProviderError(Exception):
    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        error_type: str = "api_error",
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.error_type = error_type


class UpstreamProvider(Protocol):
    name: str

    async def generate(self, messages: list[dict[str, Any]], request_id: str) -> bytes:
        """Return the raw upstream response body for one chat turn."""
