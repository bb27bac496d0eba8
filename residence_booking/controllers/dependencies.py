"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from typing import Any, Callable, Coroutine

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from residence_booking.domain.models import Actor
from residence_booking.services.auth_service import AuthenticationError, AuthService
from residence_booking.services.eligibility_service import EligibilityService
from residence_booking.services.lifecycle_service import BookingLifecycleService
from residence_booking.services.query_service import BookingQueryService
from residence_booking.utils.config import get_settings


bearer_scheme = HTTPBearer(auto_error=False)


def _from_state(request: Request, name: str, label: str) -> Any:
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} is not initialized",
        )
    return service


def get_auth_service(request: Request) -> AuthService:
    service = getattr(request.app.state, "auth_service", None)
    if service is None:
        service = AuthService(settings=get_settings())
        request.app.state.auth_service = service
    return service


def get_eligibility_service(request: Request) -> EligibilityService:
    return _from_state(request, "eligibility_service", "Eligibility service")


def get_lifecycle_service(request: Request) -> BookingLifecycleService:
    return _from_state(request, "lifecycle_service", "Lifecycle service")


def get_query_service(request: Request) -> BookingQueryService:
    return _from_state(request, "query_service", "Query service")


async def get_current_actor(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> Actor:
    try:
        auth_service.validate_gateway_token(
            credentials.credentials if credentials is not None else None
        )
        return auth_service.actor_from_headers(request.headers)
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


def require_roles(*roles: str) -> Callable[..., Coroutine[Any, Any, Actor]]:
    """Route-level role guard; ownership is checked later by the gate."""
    allowed = frozenset(roles)

    async def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{actor.role}' is not authorized to access this route",
            )
        return actor

    return dependency
