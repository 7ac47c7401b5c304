from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient

from witchyworlds_site.app import create_app
from witchyworlds_site.config import SiteSettings

PANEL_URL = "http://panel.test"

ENV_KEYS = (
    "PORT",
    "HOST",
    "SITE_DOCUMENT_ROOT",
    "PTERODACTYL_BASE_URL",
    "PTERODACTYL_APP_KEY",
    "PTERODACTYL_ALLOCATION_ID",
    "PTERODACTYL_NEST_ID",
    "PTERODACTYL_EGG_ID",
    "PTERODACTYL_MEMORY_MB",
    "PTERODACTYL_DISK_MB",
    "PTERODACTYL_SWAP_MB",
    "PTERODACTYL_CPU_LIMIT",
    "PTERODACTYL_TIMEOUT_SECONDS",
    "LOG_LEVEL",
    "LOG_FILE",
    "LOG_MAX_SIZE_MB",
    "LOG_BACKUP_COUNT",
    "SITE_ENV_FILE",
)

EGG_PAYLOAD: dict[str, Any] = {
    "object": "egg",
    "attributes": {
        "id": 20,
        "docker_image": "ghcr.io/pterodactyl/yolks:java_17",
        "startup": "java -Xms128M -jar {{SERVER_JARFILE}}",
        "relationships": {
            "variables": {
                "object": "list",
                "data": [
                    {
                        "object": "egg_variable",
                        "attributes": {
                            "env_variable": "SERVER_JARFILE",
                            "default_value": "server.jar",
                        },
                    },
                    {
                        "object": "egg_variable",
                        "attributes": {
                            "env_variable": "MINECRAFT_VERSION",
                            "default_value": None,
                        },
                    },
                ],
            }
        },
    },
}


class FakePanel:
    """In-memory stand-in for the panel application API."""

    def __init__(self) -> None:
        self.users: list[dict[str, Any]] = []
        self.servers: list[dict[str, Any]] = []
        self.requests: list[httpx.Request] = []
        self.failures: dict[tuple[str, str], tuple[int, Any]] = {}
        self._next_user_id = 100
        self._next_server_id = 500

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def fail(
        self,
        method: str,
        path: str,
        *,
        status_code: int = 500,
        body: Any = None,
    ) -> None:
        self.failures[(method, path)] = (status_code, body)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def add_user(self, *, username: str, email: str) -> dict[str, Any]:
        user = {"id": self._next_user_id, "username": username, "email": email}
        self._next_user_id += 1
        self.users.append(user)
        return user

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key in self.failures:
            status_code, body = self.failures[key]
            if body is None:
                return httpx.Response(status_code, text="upstream exploded")
            return httpx.Response(status_code, json=body)

        path = request.url.path
        params = request.url.params

        if key == ("GET", "/api/application/users"):
            email = params.get("filter[email]")
            username = params.get("filter[username]")
            matches = [
                u
                for u in self.users
                if (email is not None and u["email"] == email)
                or (username is not None and u["username"] == username)
            ]
            return _list_response("user", matches)

        if key == ("POST", "/api/application/users"):
            body = json.loads(request.content)
            user = self.add_user(username=body["username"], email=body["email"])
            user.update(first_name=body["first_name"], last_name=body["last_name"])
            return httpx.Response(201, json={"object": "user", "attributes": user})

        if request.method == "DELETE" and path.startswith("/api/application/users/"):
            user_id = int(path.rsplit("/", 1)[1])
            self.users = [u for u in self.users if u["id"] != user_id]
            return httpx.Response(204)

        if key == ("GET", "/api/application/servers"):
            external_id = params.get("filter[external_id]")
            matches = [s for s in self.servers if s["external_id"] == external_id]
            return _list_response("server", matches)

        if key == ("POST", "/api/application/servers"):
            body = json.loads(request.content)
            server = {"id": self._next_server_id, **body}
            self._next_server_id += 1
            self.servers.append(server)
            return httpx.Response(201, json={"object": "server", "attributes": server})

        if key == ("GET", "/api/application/nests/1/eggs/20"):
            return httpx.Response(200, json=EGG_PAYLOAD)

        return httpx.Response(
            404,
            json={"errors": [{"code": "NotFoundHttpException", "detail": "Not found."}]},
        )


def _list_response(kind: str, rows: list[dict[str, Any]]) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "object": "list",
            "data": [{"object": kind, "attributes": row} for row in rows],
        },
    )


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch) -> None:
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def site_root(tmp_path: Path) -> Path:
    root = tmp_path / "site"
    (root / "assets" / "css").mkdir(parents=True)
    (root / "docs").mkdir()
    (root / "index.html").write_bytes(b"<!DOCTYPE html><h1>WitchyWorlds</h1>\n")
    (root / "assets" / "css" / "site.css").write_text("body { color: purple; }\n")
    (root / "docs" / "index.html").write_text("<p>docs</p>\n")
    (tmp_path / "secret.txt").write_text("do not serve me\n")
    return root


@pytest.fixture
def settings(site_root: Path) -> SiteSettings:
    return SiteSettings(
        _env_file=None,
        document_root=site_root,
        panel_base_url=f"{PANEL_URL}/",
        panel_app_key="ptla_test_key",
        panel_allocation_id=7,
    )


@pytest.fixture
def panel() -> FakePanel:
    return FakePanel()


@pytest.fixture
def client(settings: SiteSettings, panel: FakePanel):
    with TestClient(create_app(settings, panel_transport=panel.transport)) as c:
        yield c
