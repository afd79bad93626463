"""Export and import of the full data bundle."""

from collections.abc import Callable
from datetime import datetime
from typing import Any

from roleswitch.core.datetime_utils import utc_now
from roleswitch.core.exceptions import StorageError, ValidationError
from roleswitch.core.logging import get_logger
from roleswitch.core.validation import sanitize_role_input, validate_role_data
from roleswitch.schemas import DATA_VERSION, ExportBundle, ImportResult, RoleInput

logger = get_logger(__name__)


def _major(version: str) -> int:
    return int(version.split(".", 1)[0])


class DataTransferService:
    """
    Builds export bundles and merges imported ones into storage.

    Imports never touch the live engine state: the running session, lock and
    transition stay as they are. Roles keep their ids so imported sessions
    still resolve to them.

    Roles are sanitized and validated like registry edits. Roles, sessions
    and events whose ids are already stored are skipped, never overwritten.
    """

    def __init__(
        self,
        storage: Any,
        registry: Any,
        engine: Any,
        settings_manager: Any,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._storage = storage
        self._registry = registry
        self._engine = engine
        self._settings_manager = settings_manager
        self._clock = clock

    async def export_all(self) -> ExportBundle:
        bundle = ExportBundle(
            roles=self._registry.get_all_roles(),
            sessions=await self._storage.get_all_sessions(),
            events=await self._storage.get_all_events(),
            state=self._engine.get_state(),
            settings=self._settings_manager.get_settings(),
            version=DATA_VERSION,
            exported_at=self._clock(),
        )
        logger.info(
            "Data exported",
            extra={
                "roles": len(bundle.roles),
                "sessions": len(bundle.sessions),
                "events": len(bundle.events),
            },
        )
        return bundle

    async def import_data(self, bundle: ExportBundle, replace_existing: bool = False) -> ImportResult:
        """
        Merge a bundle into storage.

        With ``replace_existing`` the stored roles and history are cleared
        first. Items that fail are reported in ``errors``; the rest are kept.
        """
        try:
            if _major(bundle.version) > _major(DATA_VERSION):
                return ImportResult(
                    success=False,
                    message=f"Unsupported data version {bundle.version} (expected {DATA_VERSION})",
                )
        except ValueError:
            return ImportResult(success=False, message=f"Invalid data version: {bundle.version}")

        if replace_existing:
            await self._storage.clear_roles()
            await self._storage.clear_history()

        errors: list[str] = []
        counts = {"roles": 0, "sessions": 0, "events": 0, "settings": 0}

        stored_roles = await self._storage.get_all_roles()
        existing_ids = {role.id for role in stored_roles}
        for role in bundle.roles:
            if role.id in existing_ids:
                continue
            candidate = sanitize_role_input(
                RoleInput(
                    name=role.name,
                    color_hex=role.color_hex,
                    description=role.description,
                    icon=role.icon,
                )
            )
            problems = validate_role_data(candidate, stored_roles)
            if problems:
                errors.append(f'Skipped role "{role.name}": {"; ".join(problems)}')
                continue
            imported = role.model_copy(
                update={"name": candidate.name, "description": candidate.description}
            )
            try:
                await self._storage.save_role(imported)
            except StorageError as e:
                errors.append(f'Failed to import role "{role.name}": {e.message}')
                continue
            existing_ids.add(imported.id)
            stored_roles.append(imported)
            counts["roles"] += 1

        for session in bundle.sessions:
            if session.is_active:
                errors.append(f"Skipped active session {session.id}")
                continue
            try:
                if await self._storage.has_session(session.id):
                    continue
                await self._storage.append_session_history(session)
            except StorageError as e:
                errors.append(f"Failed to import session {session.id}: {e.message}")
                continue
            counts["sessions"] += 1

        for event in bundle.events:
            try:
                if await self._storage.has_event(event.id):
                    continue
                await self._storage.append_event(event)
            except StorageError as e:
                errors.append(f"Failed to import event {event.id}: {e.message}")
                continue
            counts["events"] += 1

        if bundle.settings is not None:
            try:
                await self._settings_manager.update_settings(bundle.settings.model_dump())
                counts["settings"] = 1
            except (ValidationError, StorageError) as e:
                errors.append(f"Failed to import settings: {e.message}")

        await self._registry.load()

        logger.info(
            "Data imported",
            extra={"imported": counts, "failed": len(errors), "replace_existing": replace_existing},
        )
        return ImportResult(
            success=not errors,
            message="Import completed" if not errors else "Import completed with errors",
            imported=counts,
            errors=errors,
        )
