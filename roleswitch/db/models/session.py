"""Session model for role session history."""

from datetime import datetime
from typing import Any

from sqlalchemy import BigInteger, Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from roleswitch.core.datetime_utils import utc_now
from roleswitch.db.base import Base
from roleswitch.db.types import JSONType, StringArray, UTCDateTime


class SessionRecord(Base):
    """Role session history.

    ``role_id`` deliberately has no foreign key: deleting a role leaves past
    sessions untouched.
    """

    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    role_id: Mapped[str] = mapped_column(String(64), nullable=False)
    start_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_time: Mapped[datetime | None] = mapped_column(UTCDateTime())
    duration_ms: Mapped[int | None] = mapped_column(BigInteger)
    notes: Mapped[list[str]] = mapped_column(StringArray(), default=list)
    events: Mapped[list[dict[str, Any]]] = mapped_column(JSONType(), default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utc_now, onupdate=utc_now)

    __table_args__ = (
        Index("idx_sessions_role_time", "role_id", "start_time"),
        Index("idx_sessions_start_time", "start_time"),
        Index("idx_sessions_end_time", "end_time"),
    )
