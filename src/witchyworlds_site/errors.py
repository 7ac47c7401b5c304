from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Failure classes surfaced to site visitors."""

    VALIDATION = "validation"
    SERVICE_UNAVAILABLE = "service_unavailable"
    CONFLICT = "conflict"
    UPSTREAM = "upstream"
    BAD_REQUEST = "bad_request"
    PAYLOAD_TOO_LARGE = "payload_too_large"

    @property
    def status_code(self) -> int:
        return _STATUS_BY_KIND[self]


_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.SERVICE_UNAVAILABLE: 500,
    ErrorKind.CONFLICT: 409,
    ErrorKind.UPSTREAM: 502,
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.PAYLOAD_TOO_LARGE: 413,
}


class SiteError(Exception):
    """A user-facing failure; `detail` is safe to show to the caller."""

    def __init__(self, kind: ErrorKind, detail: str) -> None:
        super().__init__(detail)
        self.kind = kind
        self.detail = detail

    @property
    def status_code(self) -> int:
        return self.kind.status_code


class PanelApiError(Exception):
    """The panel rejected a request or could not be reached."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
