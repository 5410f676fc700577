"""Key/value option store backed by the options table."""

from typing import Any

from sqlalchemy.orm import Session

from secmon.models import Option

CHANNEL_OPTION_PREFIX = "channel."
DETECTOR_OPTION_PREFIX = "detector."


def channel_key(channel_name: str) -> str:
    return f"{CHANNEL_OPTION_PREFIX}{channel_name}"


def detector_enabled_key(detector_name: str) -> str:
    return f"{DETECTOR_OPTION_PREFIX}{detector_name}.enabled"


class OptionStore:
    """Read and write JSON option values by key."""

    def get(self, session: Session, key: str, default: Any = None) -> Any:
        row = session.get(Option, key)
        if row is None or row.value is None:
            return default
        return row.value

    def set(self, session: Session, key: str, value: Any, commit: bool = True) -> None:
        row = session.get(Option, key)
        if row is None:
            session.add(Option(key=key, value=value))
        else:
            row.value = value
        if commit:
            session.commit()

    def delete(self, session: Session, key: str) -> bool:
        row = session.get(Option, key)
        if row is None:
            return False
        session.delete(row)
        session.commit()
        return True

    def get_channel_config(self, session: Session, channel_name: str) -> dict[str, Any]:
        value = self.get(session, channel_key(channel_name), {})
        return dict(value) if isinstance(value, dict) else {}

    def update_channel_config(
        self,
        session: Session,
        channel_name: str,
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        """Merge changes into the stored override; keys set to None are removed."""
        merged = self.get_channel_config(session, channel_name)
        for key, value in changes.items():
            if value is None:
                merged.pop(key, None)
            else:
                merged[key] = value
        self.set(session, channel_key(channel_name), merged)
        return merged

    def detector_enabled(self, session: Session, detector_name: str) -> bool | None:
        """Stored override for a detector's enabled flag; None when not overridden."""
        value = self.get(session, detector_enabled_key(detector_name))
        return value if isinstance(value, bool) else None
