from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from witchyworlds_site import __version__
from witchyworlds_site.api.models import fail
from witchyworlds_site.api.register import router as register_router
from witchyworlds_site.api.static import router as static_router
from witchyworlds_site.config import SiteSettings, load_site_settings, warn_if_incomplete
from witchyworlds_site.errors import ErrorKind, SiteError
from witchyworlds_site.panel import PanelClient
from witchyworlds_site.registration import RegistrationService
from witchyworlds_site.static_site import StaticSite

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR = "Unexpected error when creating your account. Please try again later."


def _error_response(status_code: int, text: str, headers: dict[str, str] | None = None):
    return JSONResponse(
        status_code=status_code,
        content=fail(text).model_dump(mode="json"),
        headers=headers,
    )


def create_app(
    settings: SiteSettings | None = None,
    *,
    panel_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        site_settings = settings if settings is not None else load_site_settings()
        warn_if_incomplete(site_settings)

        static_site = StaticSite(site_settings.document_root)
        if not static_site.root.is_dir():
            logger.warning(
                "Document root is missing (%s); only the API will respond", static_site.root
            )

        panel = PanelClient.from_settings(site_settings, transport=panel_transport)

        app.state.settings = site_settings
        app.state.static_site = static_site
        app.state.panel = panel
        app.state.registration = RegistrationService(site_settings, panel)

        logger.info("WitchyWorlds site ready, serving %s", static_site.root)
        try:
            yield
        finally:
            await panel.aclose()

    app = FastAPI(
        title="WitchyWorlds Site",
        version=__version__,
        lifespan=_lifespan,
        # Every other GET belongs to the document root.
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        response = await call_next(request)
        logger.info(f"{request.method} {request.url.path} - {response.status_code}")
        return response

    @app.exception_handler(SiteError)
    async def _site_error_handler(request: Request, exc: SiteError) -> JSONResponse:
        headers = None
        if exc.kind is ErrorKind.PAYLOAD_TOO_LARGE:
            # Stop reading whatever the client is still sending.
            headers = {"Connection": "close"}
        return _error_response(exc.status_code, exc.detail, headers)

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        detail = exc.detail if isinstance(exc.detail, str) else "HTTP error"
        return _error_response(exc.status_code, detail)

    @app.exception_handler(Exception)
    async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            f"Unhandled exception on {request.method} {request.url.path}: {exc}",
            exc_info=exc,
        )
        return _error_response(500, UNEXPECTED_ERROR)

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(register_router)
    # Catch-all; must stay last.
    app.include_router(static_router)

    return app
