"""Database models."""

from roleswitch.db.models.app_settings import DEFAULT_SETTINGS_KEY, AppSettingsRecord
from roleswitch.db.models.event import EventRecord
from roleswitch.db.models.role import RoleRecord
from roleswitch.db.models.session import SessionRecord
from roleswitch.db.models.system_state import SYSTEM_STATE_ROW_ID, SystemStateRecord

__all__ = [
    "AppSettingsRecord",
    "DEFAULT_SETTINGS_KEY",
    "EventRecord",
    "RoleRecord",
    "SYSTEM_STATE_ROW_ID",
    "SessionRecord",
    "SystemStateRecord",
]
