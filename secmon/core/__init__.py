"""Core configuration, database and shared exceptions."""

from secmon.core.config import get_settings, settings
from secmon.core.database import get_db

__all__ = ["get_settings", "settings", "get_db"]
