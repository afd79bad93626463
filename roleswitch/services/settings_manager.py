"""Runtime engine settings, persisted and broadcast on change."""

from typing import Any

from pydantic import ValidationError as PydanticValidationError

from roleswitch.core.exceptions import StorageError, ValidationError
from roleswitch.core.logging import get_logger, log_error
from roleswitch.core.signals import Signal
from roleswitch.schemas import EngineSettings

logger = get_logger(__name__)


def _format_errors(error: PydanticValidationError) -> list[str]:
    return [
        f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}"
        for item in error.errors()
    ]


class SettingsManager:
    """
    Holds the current ``EngineSettings``.

    Defaults come from application config; values saved at runtime override
    them. ``settings_changed`` fires only when a value actually changes.
    """

    def __init__(self, storage: Any, defaults: EngineSettings) -> None:
        self._storage = storage
        self._defaults = defaults.model_copy()
        self._settings = defaults.model_copy()
        self.settings_changed: Signal[EngineSettings] = Signal("settings_changed")

    async def load(self) -> EngineSettings:
        try:
            stored = await self._storage.load_settings()
        except StorageError as e:
            log_error(logger, "Failed to load settings, using defaults", error=e)
            stored = None

        if stored:
            known = {k: v for k, v in stored.items() if k in EngineSettings.model_fields}
            try:
                self._settings = EngineSettings.model_validate(
                    {**self._defaults.model_dump(), **known}
                )
            except PydanticValidationError as e:
                logger.warning(
                    "Ignoring invalid stored settings",
                    extra={"errors": _format_errors(e)},
                )
                self._settings = self._defaults.model_copy()

        logger.info("Settings loaded", extra={"settings": self._settings.model_dump()})
        return self.get_settings()

    def get_settings(self) -> EngineSettings:
        return self._settings.model_copy()

    def validate_settings(self, changes: dict[str, Any]) -> list[str]:
        """Errors for a partial update; empty when it would be accepted."""
        errors = [
            f"Unknown setting key: {key}"
            for key in changes
            if key not in EngineSettings.model_fields
        ]
        if errors:
            return errors
        try:
            EngineSettings.model_validate({**self._settings.model_dump(), **changes})
        except PydanticValidationError as e:
            return _format_errors(e)
        return []

    async def update_settings(self, changes: dict[str, Any]) -> EngineSettings:
        """
        Validate and persist a partial update.

        Raises:
            ValidationError: If a key is unknown or a value is out of range
            StorageError: If the write fails; current settings are unchanged
        """
        errors = self.validate_settings(changes)
        if errors:
            raise ValidationError(errors, subject="settings")

        updated = EngineSettings.model_validate({**self._settings.model_dump(), **changes})
        return await self._apply(updated)

    async def update_setting(self, key: str, value: Any) -> EngineSettings:
        return await self.update_settings({key: value})

    async def reset_to_defaults(self) -> EngineSettings:
        logger.info("Resetting settings to defaults")
        return await self._apply(self._defaults.model_copy())

    async def _apply(self, updated: EngineSettings) -> EngineSettings:
        await self._storage.save_settings(updated.model_dump())

        changed = updated != self._settings
        self._settings = updated
        if changed:
            logger.info("Settings changed", extra={"settings": updated.model_dump()})
            self.settings_changed.emit(self.get_settings())
        return self.get_settings()
