"""API routes."""

from roleswitch.api.routes import (
    analytics,
    data,
    health,
    roles,
    sessions,
    settings,
)

__all__ = [
    "analytics",
    "data",
    "health",
    "roles",
    "sessions",
    "settings",
]
