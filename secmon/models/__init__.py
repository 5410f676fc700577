"""SQLAlchemy ORM models."""

from secmon.models.base import Base
from secmon.models.ignore_rule import IgnoreRule
from secmon.models.issue import Issue
from secmon.models.notification import NotificationTask
from secmon.models.option import Option, RunLock
from secmon.models.user import User

__all__ = [
    "Base",
    "IgnoreRule",
    "Issue",
    "NotificationTask",
    "Option",
    "RunLock",
    "User",
]
