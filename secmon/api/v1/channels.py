"""Notification channel endpoints: list, configure and test."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from secmon.api.v1.auth import get_current_user, require_admin
from secmon.api.v1.deps import get_services, http_error
from secmon.channels.base import MASK
from secmon.core.container import Services
from secmon.core.database import get_db
from secmon.core.exceptions import SecmonError
from secmon.schemas.auth import CurrentUser
from secmon.schemas.channels import (
    ChannelConfigUpdate,
    ChannelInfo,
    ChannelListResponse,
    ConnectionTestResult,
)

router = APIRouter()


@router.get("", response_model=ChannelListResponse)
def list_channels(
    services: Annotated[Services, Depends(get_services)],
    _user: Annotated[CurrentUser, Depends(get_current_user)],
) -> ChannelListResponse:
    return ChannelListResponse(channels=[c.info() for c in services.registry.all()])


@router.get("/{name}", response_model=ChannelInfo)
def get_channel(
    name: str,
    services: Annotated[Services, Depends(get_services)],
    _user: Annotated[CurrentUser, Depends(get_current_user)],
) -> ChannelInfo:
    try:
        return services.registry.require(name).info()
    except SecmonError as e:
        raise http_error(e) from e


@router.put("/{name}", response_model=ChannelInfo)
def update_channel(
    name: str,
    body: ChannelConfigUpdate,
    db: Annotated[Session, Depends(get_db)],
    services: Annotated[Services, Depends(get_services)],
    _admin: Annotated[CurrentUser, Depends(require_admin)],
) -> ChannelInfo:
    """
    Store a configuration override for the channel and apply it immediately.
    Masked secret values sent back unchanged are ignored.
    """
    try:
        channel = services.registry.require(name)
    except SecmonError as e:
        raise http_error(e) from e
    changes = {k: v for k, v in body.options.items() if v != MASK and k != "enabled"}
    if body.enabled is not None:
        changes["enabled"] = body.enabled
    services.options.update_channel_config(db, name, changes)
    services.apply_channel_overrides(db, name)
    return channel.info()


@router.post("/{name}/test", response_model=ConnectionTestResult)
def test_channel(
    name: str,
    services: Annotated[Services, Depends(get_services)],
    _admin: Annotated[CurrentUser, Depends(require_admin)],
) -> ConnectionTestResult:
    try:
        return services.registry.require(name).test_connection()
    except SecmonError as e:
        raise http_error(e) from e
