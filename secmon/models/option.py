"""ORM models for the key/value option store and the orchestrator run lock."""

from sqlalchemy import Column, DateTime, String, func

from secmon.models.base import Base, JSONType


class Option(Base):
    """Key/value configuration blob (channel overrides, detector toggles)."""

    __tablename__ = "options"

    key = Column(String(191), primary_key=True)
    value = Column(JSONType, nullable=True)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class RunLock(Base):
    """
    Named lock row used to throttle and serialize scheduled runs.

    locked_until is set while a run is active and cleared on release; a crashed run's
    lock lapses once locked_until passes.
    """

    __tablename__ = "run_locks"

    name = Column(String(100), primary_key=True)
    holder = Column(String(64), nullable=True)
    locked_until = Column(DateTime(timezone=True), nullable=True)
    last_run_at = Column(DateTime(timezone=True), nullable=True)
    last_finished_at = Column(DateTime(timezone=True), nullable=True)
