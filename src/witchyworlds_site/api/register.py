from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from witchyworlds_site.api.models import ErrorResponse, MessageResponse, message
from witchyworlds_site.errors import ErrorKind, SiteError
from witchyworlds_site.registration import RegistrationService

MAX_BODY_BYTES = 1_000_000

BODY_TOO_LARGE = "Request body too large."
INVALID_JSON = "Invalid JSON payload."

router = APIRouter(prefix="/api", tags=["registration"])


def _declared_length(request: Request) -> int | None:
    raw = request.headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


async def read_limited_body(request: Request, *, limit: int = MAX_BODY_BYTES) -> bytes:
    """Read the request body, giving up as soon as it grows past `limit` bytes."""

    declared = _declared_length(request)
    if declared is not None and declared > limit:
        raise SiteError(ErrorKind.PAYLOAD_TOO_LARGE, BODY_TOO_LARGE)

    data = bytearray()
    async for chunk in request.stream():
        data.extend(chunk)
        if len(data) > limit:
            raise SiteError(ErrorKind.PAYLOAD_TOO_LARGE, BODY_TOO_LARGE)
    return bytes(data)


def parse_json_object(body: bytes) -> dict[str, Any]:
    if not body:
        return {}
    try:
        parsed = json.loads(body)
    except ValueError as e:
        raise SiteError(ErrorKind.BAD_REQUEST, INVALID_JSON) from e
    return parsed if isinstance(parsed, dict) else {}


@router.post(
    "/register",
    status_code=201,
    response_model=MessageResponse,
    responses={
        400: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def register(request: Request) -> JSONResponse:
    service: RegistrationService | None = getattr(request.app.state, "registration", None)
    if service is None:
        raise HTTPException(status_code=500, detail="Server not initialized")

    body = await read_limited_body(request)
    payload = parse_json_object(body)

    text = await service.register(payload)
    return JSONResponse(status_code=201, content=message(text).model_dump(mode="json"))
