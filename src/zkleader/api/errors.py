"""Error responses for the zkleader control surface.

Every error body has the same shape::

    {"code": "ServiceUnavailable", "text": "..."}
"""

from __future__ import annotations

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from zkleader.errors import CommandTimeoutError


class ErrorBody(BaseModel):
    model_config = {"extra": "forbid"}

    code: str
    text: str


class ElectionApiError(HTTPException):
    """Base exception for control surface errors."""

    def __init__(self, status_code: int, code: str, text: str):
        self.code = code
        self.text = text
        super().__init__(status_code=status_code, detail=text)

    def to_body(self) -> ErrorBody:
        return ErrorBody(code=self.code, text=self.text)


class ServiceUnavailableError(ElectionApiError):
    """The election node cannot serve the request right now (503)."""

    def __init__(self, text: str):
        super().__init__(status_code=503, code="ServiceUnavailable", text=text)


class InternalServerError(ElectionApiError):
    """Internal server error (500)."""

    def __init__(self, text: str = "An unexpected error occurred"):
        super().__init__(status_code=500, code="InternalServerError", text=text)


async def election_api_exception_handler(request: Request, exc: ElectionApiError) -> JSONResponse:
    """Exception handler for control surface errors."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_body().model_dump())


async def command_timeout_exception_handler(
    request: Request, exc: CommandTimeoutError
) -> JSONResponse:
    """A control command is still queued behind other events."""
    error = ServiceUnavailableError(str(exc))
    return JSONResponse(status_code=error.status_code, content=error.to_body().model_dump())


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Exception handler for unexpected errors."""
    return JSONResponse(status_code=500, content=InternalServerError().to_body().model_dump())
