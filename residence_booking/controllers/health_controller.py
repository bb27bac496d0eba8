"""Service identity and runtime context endpoints."""

from __future__ import annotations

import time

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field

from residence_booking.controllers.dependencies import require_roles
from residence_booking.domain.models import ROLE_ADMIN, Actor
from residence_booking.utils.config import Settings, get_settings


router = APIRouter(tags=["health"])
context_router = APIRouter(tags=["health"])

_STARTED_AT = time.monotonic()


class ApplicationInfoResponse(BaseModel):
    application: str
    version: str
    uptime_seconds: int = Field(ge=0)


class ContextResponse(BaseModel):
    max_concurrent_users: int = Field(gt=0)
    actor_roles: list[str]


def _settings_for(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


@router.get("/", response_model=ApplicationInfoResponse, status_code=status.HTTP_200_OK)
async def get_root(request: Request) -> ApplicationInfoResponse:
    settings = _settings_for(request)
    return ApplicationInfoResponse(
        application=settings.app_name,
        version=settings.app_version,
        uptime_seconds=int(time.monotonic() - _STARTED_AT),
    )


@context_router.get(
    "/context",
    response_model=ContextResponse,
    status_code=status.HTTP_200_OK,
)
async def get_context(
    request: Request,
    _: Actor = Depends(require_roles(ROLE_ADMIN)),
) -> ContextResponse:
    """Capacity and role vocabulary this deployment was configured with."""
    settings = _settings_for(request)
    return ContextResponse(
        max_concurrent_users=settings.max_concurrent_users,
        actor_roles=list(settings.actor_roles),
    )
