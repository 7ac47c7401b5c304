from __future__ import annotations

from pydantic import BaseModel


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    error: str


def message(text: str) -> MessageResponse:
    return MessageResponse(message=text)


def fail(text: str) -> ErrorResponse:
    return ErrorResponse(error=text)
