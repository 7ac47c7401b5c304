"""Registration flow: validate, check for duplicates, create the panel user and server.

A server provisioning failure triggers one best-effort delete of the user that
was just created, so the visitor can retry with the same name and email.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from witchyworlds_site.config import SiteSettings
from witchyworlds_site.errors import ErrorKind, PanelApiError, SiteError
from witchyworlds_site.panel import PanelClient, PanelUser

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^\S+@\S+\.\S+$")
MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 8

USERNAME_TOO_SHORT = "Username must be at least 3 characters long."
EMAIL_INVALID = "A valid email address is required."
PASSWORD_TOO_SHORT = "Password must be at least 8 characters long."

NOT_CONFIGURED = (
    "Registration is not available right now. "
    "Please contact staff while we finish configuration."
)
PANEL_UNREACHABLE = (
    "We could not reach the panel to verify your account. Please try again in a moment."
)
ACCOUNT_EXISTS = "An account with that email or username already exists on the panel."
CREATE_USER_FAILED = (
    "We could not create your panel account right now. Please try again or contact staff."
)
SERVER_PROVISION_FAILED = (
    "We created your panel login but could not provision the server. "
    "Please try again or reach out to staff."
)
REGISTRATION_COMPLETE = (
    "Your WitchyWorlds panel account and starter server are ready! "
    "You can log in at the panel using the credentials you just provided."
)


@dataclass(frozen=True)
class RegistrationRequest:
    username: str
    email: str
    password: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> RegistrationRequest:
        def _text(key: str) -> str:
            value = payload.get(key)
            return value.strip() if isinstance(value, str) else ""

        return cls(
            username=_text("username"),
            email=_text("email").lower(),
            password=_text("password"),
        )

    def validation_errors(self) -> list[str]:
        errors: list[str] = []
        if len(self.username) < MIN_USERNAME_LENGTH:
            errors.append(USERNAME_TOO_SHORT)
        if not self.email or not EMAIL_PATTERN.match(self.email):
            errors.append(EMAIL_INVALID)
        if len(self.password) < MIN_PASSWORD_LENGTH:
            errors.append(PASSWORD_TOO_SHORT)
        return errors


class RegistrationService:
    def __init__(self, settings: SiteSettings, panel: PanelClient) -> None:
        self._settings = settings
        self._panel = panel

    async def register(self, payload: dict[str, Any]) -> str:
        """Run the full registration and return the success message.

        Raises SiteError for every user-facing failure.
        """

        req = RegistrationRequest.from_payload(payload)

        errors = req.validation_errors()
        if errors:
            raise SiteError(ErrorKind.VALIDATION, " ".join(errors))

        if not self._settings.registration_configured:
            raise SiteError(ErrorKind.SERVICE_UNAVAILABLE, NOT_CONFIGURED)

        try:
            user_exists = await self._panel.find_existing_user(req.email, req.username)
        except PanelApiError as e:
            logger.error("Failed to check for an existing panel user: %s", e)
            raise SiteError(ErrorKind.UPSTREAM, PANEL_UNREACHABLE) from e

        if user_exists:
            raise SiteError(ErrorKind.CONFLICT, ACCOUNT_EXISTS)

        try:
            user = await self._panel.create_user(
                email=req.email,
                username=req.username,
                password=req.password,
            )
        except PanelApiError as e:
            logger.error("Failed to create panel user %r: %s", req.username, e)
            raise SiteError(ErrorKind.UPSTREAM, e.message or CREATE_USER_FAILED) from e

        try:
            await self._panel.ensure_server_for_user(user)
        except Exception as e:
            logger.error("Failed to provision a server for panel user %s: %s", user.id, e)
            await self._delete_user_safe(user)
            raise SiteError(ErrorKind.UPSTREAM, SERVER_PROVISION_FAILED) from e

        logger.info("Registered panel user %s (%s)", user.id, user.username)
        return REGISTRATION_COMPLETE

    async def _delete_user_safe(self, user: PanelUser) -> None:
        if not user.id:
            return
        try:
            await self._panel.delete_user(user.id)
        except Exception:
            logger.exception("Cleanup of panel user %s failed", user.id)
        else:
            logger.info("Removed panel user %s after failed provisioning", user.id)
