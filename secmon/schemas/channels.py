"""Pydantic schemas for notification channels and their admin endpoints."""

from typing import Any

from pydantic import BaseModel, Field


class ConnectionTestResult(BaseModel):
    """Outcome of an operator-triggered connectivity test."""

    success: bool
    message: str


class ChannelInfo(BaseModel):
    """Channel as listed by the admin API; secrets are masked."""

    name: str
    enabled: bool
    config: dict[str, Any] = Field(default_factory=dict)


class ChannelListResponse(BaseModel):
    channels: list[ChannelInfo]


class ChannelConfigUpdate(BaseModel):
    """
    Partial configuration override for one channel.

    Keys map to the channel's option names (e.g. webhook_url, chat_id). A null value
    removes the stored override and falls back to the environment setting.
    """

    enabled: bool | None = None
    options: dict[str, Any] = Field(default_factory=dict, max_length=50)
