"""Engine settings endpoints."""

from typing import Any

from fastapi import APIRouter, Body, Depends

from roleswitch.api.deps import get_settings_manager
from roleswitch.schemas import EngineSettings
from roleswitch.services.settings_manager import SettingsManager

router = APIRouter()


@router.get("", response_model=EngineSettings)
async def get_settings(
    manager: SettingsManager = Depends(get_settings_manager),
) -> EngineSettings:
    return manager.get_settings()


@router.patch("", response_model=EngineSettings)
async def update_settings(
    changes: dict[str, Any] = Body(..., examples=[{"minimum_session_duration": 600}]),
    manager: SettingsManager = Depends(get_settings_manager),
) -> EngineSettings:
    """
    Update some settings.

    Unknown keys and out-of-range values are rejected with 422. New values
    apply to the next lock or transition; running timers keep their deadline.
    """
    return await manager.update_settings(changes)


@router.post("/reset", response_model=EngineSettings)
async def reset_settings(
    manager: SettingsManager = Depends(get_settings_manager),
) -> EngineSettings:
    return await manager.reset_to_defaults()
