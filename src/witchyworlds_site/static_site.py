from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

INDEX_FILE = "index.html"
CHUNK_SIZE = 64 * 1024

CONTENT_TYPES: dict[str, str] = {
    ".html": "text/html; charset=utf-8",
    ".css": "text/css; charset=utf-8",
    ".js": "application/javascript; charset=utf-8",
    ".json": "application/json; charset=utf-8",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def content_type_for(path: Path) -> str:
    return CONTENT_TYPES.get(path.suffix.lower(), DEFAULT_CONTENT_TYPE)


class StaticSite:
    """Files under a single document root.

    Request paths that resolve outside the root, missing files, and any stat
    failure all resolve to None.
    """

    def __init__(self, document_root: Path) -> None:
        self._root = Path(document_root).resolve()

    @property
    def root(self) -> Path:
        return self._root

    def _inside_root(self, candidate: Path) -> bool:
        return candidate == self._root or candidate.is_relative_to(self._root)

    def resolve(self, request_path: str) -> Path | None:
        relative = request_path.lstrip("/") or INDEX_FILE
        if "\x00" in relative:
            return None

        try:
            candidate = (self._root / relative).resolve()
        except (OSError, RuntimeError):
            return None
        if not self._inside_root(candidate):
            return None

        try:
            if candidate.is_dir():
                candidate = (candidate / INDEX_FILE).resolve()
                if not self._inside_root(candidate):
                    return None
            if not candidate.is_file():
                return None
        except OSError:
            return None
        return candidate

    def iter_file(self, path: Path) -> Iterator[bytes]:
        with path.open("rb") as f:
            while True:
                chunk = f.read(CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
