from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from starlette.responses import PlainTextResponse, Response, StreamingResponse

from witchyworlds_site.static_site import StaticSite, content_type_for

router = APIRouter(tags=["static"])


def _not_found() -> PlainTextResponse:
    return PlainTextResponse("Not found", status_code=404)


@router.api_route("/{request_path:path}", methods=["GET", "HEAD"], include_in_schema=False)
async def serve_static(request: Request, request_path: str) -> Response:
    site: StaticSite | None = getattr(request.app.state, "static_site", None)
    if site is None:
        raise HTTPException(status_code=500, detail="Server not initialized")

    path = site.resolve(request_path)
    if path is None:
        return _not_found()

    try:
        size = path.stat().st_size
    except OSError:
        return _not_found()

    headers = {"Content-Length": str(size)}
    media_type = content_type_for(path)
    if request.method == "HEAD":
        return Response(status_code=200, media_type=media_type, headers=headers)

    return StreamingResponse(site.iter_file(path), media_type=media_type, headers=headers)
