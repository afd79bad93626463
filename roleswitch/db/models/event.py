"""Event log model."""

from datetime import datetime
from typing import Any

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from roleswitch.core.datetime_utils import utc_now
from roleswitch.db.base import Base
from roleswitch.db.types import JSONType, UTCDateTime


class EventRecord(Base):
    """Append-only lifecycle event (start/end/switch/cancelTransition)."""

    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    role_id: Mapped[str] = mapped_column(String(64), nullable=False)
    at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    session_id: Mapped[str | None] = mapped_column(String(64))
    meta: Mapped[dict[str, Any] | None] = mapped_column(JSONType())
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utc_now)

    __table_args__ = (
        Index("idx_events_at", "at"),
        Index("idx_events_type", "event_type"),
        Index("idx_events_session", "session_id"),
    )
