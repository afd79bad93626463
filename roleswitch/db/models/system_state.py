"""Singleton row holding the engine state and current-session snapshot."""

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from roleswitch.core.datetime_utils import utc_now
from roleswitch.db.base import Base
from roleswitch.db.types import JSONType, UTCDateTime

SYSTEM_STATE_ROW_ID = 1


class SystemStateRecord(Base):
    """Persisted lock/transition flags.

    ``current_session`` is written independently of the flag columns, so
    saving the session never clobbers the state and vice versa.
    """

    __tablename__ = "system_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=SYSTEM_STATE_ROW_ID)
    is_locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    lock_end_time: Mapped[datetime | None] = mapped_column(UTCDateTime())
    is_in_transition: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    transition_start_time: Mapped[datetime | None] = mapped_column(UTCDateTime())
    transition_end_time: Mapped[datetime | None] = mapped_column(UTCDateTime())
    transition_target_role_id: Mapped[str | None] = mapped_column(String(64))
    transition_note: Mapped[str | None] = mapped_column(Text)
    last_active_time: Mapped[datetime | None] = mapped_column(UTCDateTime())
    has_state: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    current_session: Mapped[dict[str, Any] | None] = mapped_column(JSONType())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utc_now, onupdate=utc_now)
