"""Trust boundary between the upstream gateway and this service.

Sessions are issued elsewhere; the gateway forwards the authenticated actor
in request headers and, when a shared token is configured, proves itself
with a bearer token.
"""

from __future__ import annotations

import secrets
from typing import Mapping, Optional

from residence_booking.domain.models import Actor
from residence_booking.utils.config import Settings, get_settings


class AuthenticationError(Exception):
    """Base authentication failure."""


class MissingActorError(AuthenticationError):
    """Raised when the actor identity headers are absent."""


class InvalidGatewayTokenError(AuthenticationError):
    """Raised when the gateway bearer token is missing or wrong."""


class UnknownRoleError(AuthenticationError):
    """Raised when the forwarded role is not one this service knows."""


class AuthService:
    """Validates gateway credentials and builds the acting principal."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()

    @property
    def gateway_auth_enabled(self) -> bool:
        return bool(self._settings.gateway_token)

    def validate_gateway_token(self, bearer_token: Optional[str]) -> None:
        if not self.gateway_auth_enabled:
            return
        if bearer_token is None:
            raise InvalidGatewayTokenError("Authorization header with Bearer token is required")
        if not secrets.compare_digest(bearer_token, self._settings.gateway_token or ""):
            raise InvalidGatewayTokenError("Invalid bearer token")

    def resolve_actor(self, actor_id: Optional[str], role: Optional[str]) -> Actor:
        if not actor_id or not actor_id.strip() or not role or not role.strip():
            raise MissingActorError(
                f"{self._settings.actor_id_header} and "
                f"{self._settings.actor_role_header} headers are required"
            )
        normalized_role = role.strip().lower()
        if normalized_role not in self._settings.actor_roles:
            raise UnknownRoleError(f"Unknown actor role '{role.strip()}'")
        return Actor(actor_id=actor_id.strip(), role=normalized_role)

    def actor_from_headers(self, headers: Mapping[str, str]) -> Actor:
        return self.resolve_actor(
            headers.get(self._settings.actor_id_header),
            headers.get(self._settings.actor_role_header),
        )
