"""Shared API dependencies and service-error translation."""

from fastapi import HTTPException, Request, status

from secmon.core.container import Services
from secmon.core.exceptions import (
    ChannelNotFoundError,
    ChannelSendError,
    IgnoreRuleNotFoundError,
    InvalidIgnoreRuleError,
    InvalidTaskStateError,
    IssueNotFoundError,
    NotificationTaskNotFoundError,
    RunInProgressError,
    RunThrottledError,
    SecmonError,
)

_STATUS_BY_ERROR: dict[type[SecmonError], int] = {
    IssueNotFoundError: status.HTTP_404_NOT_FOUND,
    IgnoreRuleNotFoundError: status.HTTP_404_NOT_FOUND,
    ChannelNotFoundError: status.HTTP_404_NOT_FOUND,
    NotificationTaskNotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidIgnoreRuleError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    InvalidTaskStateError: status.HTTP_409_CONFLICT,
    RunInProgressError: status.HTTP_409_CONFLICT,
    RunThrottledError: status.HTTP_429_TOO_MANY_REQUESTS,
    ChannelSendError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def get_services(request: Request) -> Services:
    """Services built in the application lifespan."""
    return request.app.state.services


def http_error(e: SecmonError) -> HTTPException:
    """Map a service exception to the HTTP status the admin API reports for it."""
    code = _STATUS_BY_ERROR.get(type(e), status.HTTP_400_BAD_REQUEST)
    return HTTPException(status_code=code, detail=e.message)
