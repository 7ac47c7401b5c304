from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from witchyworlds_site.config import SiteSettings
from witchyworlds_site.errors import PanelApiError

logger = logging.getLogger(__name__)

GENERIC_PANEL_FAILURE = "Panel API request failed."
EXTERNAL_ID_PREFIX = "witchyworlds-user-"

USERS_ENDPOINT = "/api/application/users"
SERVERS_ENDPOINT = "/api/application/servers"

SERVER_NAME_MAX_LENGTH = 191
FIRST_NAME_MAX_LENGTH = 30
DEFAULT_FIRST_NAME = "Player"
DEFAULT_LAST_NAME = "Witchy"
SERVER_IO_WEIGHT = 500
SERVER_FEATURE_LIMITS: dict[str, int] = {"databases": 0, "backups": 1}


@dataclass(frozen=True)
class PanelUser:
    id: int
    username: str
    email: str
    attributes: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_attributes(cls, attributes: dict[str, Any]) -> PanelUser:
        return cls(
            id=int(attributes["id"]),
            username=str(attributes.get("username") or ""),
            email=str(attributes.get("email") or ""),
            attributes=dict(attributes),
        )


@dataclass(frozen=True)
class PanelServer:
    id: int | None
    external_id: str | None
    attributes: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_attributes(cls, attributes: dict[str, Any]) -> PanelServer:
        raw_id = attributes.get("id")
        return cls(
            id=int(raw_id) if raw_id is not None else None,
            external_id=attributes.get("external_id"),
            attributes=dict(attributes),
        )


@dataclass(frozen=True)
class EggDetails:
    docker_image: str
    startup: str
    variable_defaults: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> EggDetails:
        attributes = payload.get("attributes") or {}
        return cls(
            docker_image=attributes.get("docker_image") or "",
            startup=attributes.get("startup") or "",
            variable_defaults=_variable_defaults(attributes),
        )


def _variable_defaults(attributes: dict[str, Any]) -> dict[str, str]:
    relationships = attributes.get("relationships") or {}
    variables = (relationships.get("variables") or {}).get("data")
    if not isinstance(variables, list):
        return {}

    env: dict[str, str] = {}
    for variable in variables:
        attr = (variable or {}).get("attributes") or {}
        name = attr.get("env_variable")
        if not name:
            continue
        env[name] = attr.get("default_value") or ""
    return env


def external_id_for_user(user_id: int) -> str:
    return f"{EXTERNAL_ID_PREFIX}{user_id}"


def error_message_from_body(text: str) -> str:
    """Join the `detail` (or `code`) of each entry in a panel error body."""

    try:
        parsed = json.loads(text)
    except ValueError:
        return GENERIC_PANEL_FAILURE

    errors = parsed.get("errors") if isinstance(parsed, dict) else None
    if not isinstance(errors, list) or not errors:
        return GENERIC_PANEL_FAILURE

    parts = []
    for err in errors:
        if not isinstance(err, dict):
            continue
        part = err.get("detail") or err.get("code")
        if part:
            parts.append(str(part))
    return " ".join(parts) or GENERIC_PANEL_FAILURE


def _has_matches(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return False
    data = payload.get("data")
    return isinstance(data, list) and len(data) > 0


class PanelClient:
    """Authenticated access to the panel's application API.

    Egg details are fetched once per client and reused for every server created
    through it.
    """

    def __init__(self, settings: SiteSettings, http: httpx.AsyncClient) -> None:
        self._settings = settings
        self._http = http
        self._egg: EggDetails | None = None
        self._egg_lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: SiteSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> PanelClient:
        http = httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(settings.panel_timeout_seconds),
        )
        return cls(settings, http)

    async def aclose(self) -> None:
        await self._http.aclose()

    def _headers(self, *, with_body: bool) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._settings.panel_app_key_value}",
            "Accept": "application/json",
        }
        if with_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        json_body: dict[str, Any] | None = None,
        *,
        params: dict[str, str] | None = None,
    ) -> Any:
        """Call the panel and return the decoded JSON body (None when empty)."""

        url = f"{self._settings.panel_base_url}{endpoint}"
        content = json.dumps(json_body) if json_body is not None else None

        try:
            response = await self._http.request(
                method,
                url,
                params=params,
                content=content,
                headers=self._headers(with_body=content is not None),
            )
        except httpx.HTTPError as e:
            logger.error("Panel API %s %s could not be reached: %s", method, endpoint, e)
            raise PanelApiError(GENERIC_PANEL_FAILURE) from e

        text = response.text
        if not response.is_success:
            logger.error("Panel API error %s: %s", response.status_code, text)
            raise PanelApiError(
                error_message_from_body(text),
                status_code=response.status_code,
            )

        if not text:
            return None

        try:
            return json.loads(text)
        except ValueError:
            return {"raw": text}

    async def find_existing_user(self, email: str, username: str) -> bool:
        by_email, by_username = await asyncio.gather(
            self.request(USERS_ENDPOINT, params={"filter[email]": email}),
            self.request(USERS_ENDPOINT, params={"filter[username]": username}),
        )
        return _has_matches(by_email) or _has_matches(by_username)

    async def create_user(self, *, email: str, username: str, password: str) -> PanelUser:
        payload = {
            "email": email,
            "username": username,
            "first_name": username[:FIRST_NAME_MAX_LENGTH] or DEFAULT_FIRST_NAME,
            "last_name": DEFAULT_LAST_NAME,
            "password": password,
        }

        response = await self.request(USERS_ENDPOINT, "POST", payload)
        attributes = response.get("attributes") if isinstance(response, dict) else None
        if not attributes:
            raise PanelApiError("Unable to create user.")
        try:
            return PanelUser.from_attributes(attributes)
        except (KeyError, TypeError, ValueError) as e:
            logger.error("Panel returned a user without a usable id: %r", attributes)
            raise PanelApiError("Unable to create user.") from e

    async def find_server_by_external_id(self, external_id: str) -> PanelServer | None:
        response = await self.request(
            SERVERS_ENDPOINT, params={"filter[external_id]": external_id}
        )
        if not _has_matches(response):
            return None
        first = response["data"][0] or {}
        return PanelServer.from_attributes(first.get("attributes") or {})

    async def load_egg_details(self) -> EggDetails:
        if self._egg is not None:
            return self._egg

        async with self._egg_lock:
            if self._egg is None:
                endpoint = (
                    f"/api/application/nests/{self._settings.panel_nest_id}"
                    f"/eggs/{self._settings.panel_egg_id}"
                )
                response = await self.request(endpoint, params={"include": "variables"})
                if not isinstance(response, dict) or not response:
                    raise PanelApiError("Unable to load egg details.")
                self._egg = EggDetails.from_payload(response)
        return self._egg

    def build_server_payload(self, user: PanelUser, egg: EggDetails) -> dict[str, Any]:
        s = self._settings
        name = f"{user.username}-server"[:SERVER_NAME_MAX_LENGTH] or f"witchyworlds-{user.id}"
        return {
            "name": name,
            "user": user.id,
            "external_id": external_id_for_user(user.id),
            "nest": s.panel_nest_id,
            "egg": s.panel_egg_id,
            "docker_image": egg.docker_image,
            "startup": egg.startup,
            "limits": {
                "memory": s.panel_memory_mb,
                "swap": s.panel_swap_mb,
                "disk": s.panel_disk_mb,
                "io": SERVER_IO_WEIGHT,
                "cpu": s.panel_cpu_limit,
            },
            "feature_limits": dict(SERVER_FEATURE_LIMITS),
            "allocation": {"default": s.panel_allocation_id},
            "environment": dict(egg.variable_defaults),
            "start_on_completion": True,
        }

    async def ensure_server_for_user(self, user: PanelUser) -> PanelServer:
        """Return the user's server, creating it only if none carries its external id."""

        existing = await self.find_server_by_external_id(external_id_for_user(user.id))
        if existing is not None:
            logger.info("Server already provisioned for panel user %s", user.id)
            return existing

        egg = await self.load_egg_details()
        response = await self.request(
            SERVERS_ENDPOINT, "POST", self.build_server_payload(user, egg)
        )
        attributes = response.get("attributes") if isinstance(response, dict) else None
        if not attributes:
            raise PanelApiError("Unable to create server for user.")
        return PanelServer.from_attributes(attributes)

    async def delete_user(self, user_id: int) -> None:
        await self.request(f"{USERS_ENDPOINT}/{user_id}", "DELETE")
