"""Runtime settings storage."""

from datetime import datetime
from typing import Any

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from roleswitch.core.datetime_utils import utc_now
from roleswitch.db.base import Base
from roleswitch.db.types import JSONType, UTCDateTime

DEFAULT_SETTINGS_KEY = "default"


class AppSettingsRecord(Base):
    """Engine settings changed at runtime."""

    __tablename__ = "app_settings"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    settings: Mapped[dict[str, Any]] = mapped_column(JSONType(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utc_now, onupdate=utc_now)
