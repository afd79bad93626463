"""Role registry: CRUD over the set of roles a session can be started for."""

import random
from collections import Counter
from collections.abc import Callable
from datetime import datetime
from typing import Any

from roleswitch.core.datetime_utils import utc_now
from roleswitch.core.exceptions import RoleNotFoundError, StorageError, ValidationError
from roleswitch.core.logging import get_logger, log_error
from roleswitch.core.signals import Signal
from roleswitch.core.validation import generate_id, sanitize_role_input, validate_role_data
from roleswitch.schemas import DEFAULT_ROLE_COLORS, Role, RoleInput, RoleUpdate

logger = get_logger(__name__)

DEFAULT_ROLES: list[dict[str, str]] = [
    {
        "name": "Development",
        "color_hex": "#4ECDC4",
        "description": "Writing and debugging code",
        "icon": "code",
    },
    {
        "name": "Learning",
        "color_hex": "#45B7D1",
        "description": "Reading documentation and tutorials",
        "icon": "book",
    },
    {
        "name": "Planning",
        "color_hex": "#96CEB4",
        "description": "Project planning and design",
        "icon": "gear",
    },
    {
        "name": "Communication",
        "color_hex": "#FFEAA7",
        "description": "Emails, meetings, and collaboration",
        "icon": "chat",
    },
]


class RoleRegistry:
    """
    In-memory role list backed by storage.

    Edits are transactional: memory is changed first, and restored if the
    storage write fails. ``roles_changed`` fires only after a successful write.
    """

    def __init__(
        self,
        storage: Any,
        seed_defaults: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._storage = storage
        self._seed_defaults = seed_defaults
        self._clock = clock
        self._roles: list[Role] = []
        self.roles_changed: Signal[list[Role]] = Signal("roles_changed")

    def _default_roles(self) -> list[Role]:
        now = self._clock()
        return [
            Role(id=generate_id(), created_at=now, updated_at=now, **data)
            for data in DEFAULT_ROLES
        ]

    def _notify(self) -> None:
        self.roles_changed.emit(self.get_all_roles())

    async def load(self) -> None:
        """Load roles from storage, seeding the default set on first run."""
        try:
            roles = await self._storage.get_all_roles()
            if not roles and self._seed_defaults:
                roles = self._default_roles()
                for role in roles:
                    await self._storage.save_role(role)
                logger.info("Seeded default roles", extra={"count": len(roles)})
        except StorageError as e:
            log_error(logger, "Failed to load roles, falling back to defaults", error=e)
            roles = self._default_roles()

        self._roles = list(roles)
        logger.info("Roles loaded", extra={"count": len(self._roles)})
        self._notify()

    # Queries

    def get_all_roles(self) -> list[Role]:
        return [role.model_copy() for role in self._roles]

    def get_role_by_id(self, role_id: str) -> Role | None:
        for role in self._roles:
            if role.id == role_id:
                return role.model_copy()
        return None

    def get_role_by_name(self, name: str) -> Role | None:
        needle = name.lower()
        for role in self._roles:
            if role.name.lower() == needle:
                return role.model_copy()
        return None

    def search_roles(self, query: str) -> list[Role]:
        """Case-insensitive substring match on name and description."""
        needle = query.strip().lower()
        if not needle:
            return self.get_all_roles()
        return [
            role.model_copy()
            for role in self._roles
            if needle in role.name.lower() or needle in (role.description or "").lower()
        ]

    def get_roles_by_color(self, color_hex: str) -> list[Role]:
        return [role.model_copy() for role in self._roles if role.color_hex == color_hex]

    def get_roles_by_icon(self, icon: str) -> list[Role]:
        return [role.model_copy() for role in self._roles if role.icon == icon]

    def validate_role_data(self, data: RoleInput, exclude_role_id: str | None = None) -> list[str]:
        existing = [role for role in self._roles if role.id != exclude_role_id]
        return validate_role_data(sanitize_role_input(data), existing)

    # Mutations

    async def create_role(self, data: RoleInput) -> Role:
        """
        Validate, sanitize and persist a new role.

        Raises:
            ValidationError: If any constraint fails (all failures are listed)
            StorageError: If the write fails; the registry is left unchanged
        """
        data = sanitize_role_input(data)
        errors = self.validate_role_data(data)
        if errors:
            raise ValidationError(errors)

        now = self._clock()
        role = Role(
            id=generate_id(),
            name=data.name,
            color_hex=data.color_hex,
            description=data.description,
            icon=data.icon,
            created_at=now,
            updated_at=now,
        )

        self._roles.append(role)
        try:
            await self._storage.save_role(role)
        except StorageError:
            self._roles = [r for r in self._roles if r.id != role.id]
            raise

        logger.info("Role created", extra={"role_id": role.id, "role_name": role.name})
        self._notify()
        return role.model_copy()

    async def update_role(self, role_id: str, changes: RoleUpdate) -> Role:
        """Apply partial changes to a role. Unset fields keep their value."""
        index = self._index_of(role_id)
        existing = self._roles[index]

        description_set = "description" in changes.model_fields_set
        candidate = sanitize_role_input(
            RoleInput(
                name=changes.name if changes.name is not None else existing.name,
                color_hex=changes.color_hex if changes.color_hex is not None else existing.color_hex,
                description=changes.description if description_set else existing.description,
                icon=changes.icon if changes.icon is not None else existing.icon,
            )
        )
        errors = self.validate_role_data(candidate, exclude_role_id=role_id)
        if errors:
            raise ValidationError(errors)

        updated = existing.model_copy(
            update={
                "name": candidate.name,
                "color_hex": candidate.color_hex,
                "description": candidate.description,
                "icon": candidate.icon,
                "updated_at": self._clock(),
            }
        )

        self._roles[index] = updated
        try:
            await self._storage.save_role(updated)
        except StorageError:
            self._roles[index] = existing
            raise

        logger.info("Role updated", extra={"role_id": role_id, "role_name": updated.name})
        self._notify()
        return updated.model_copy()

    async def delete_role(self, role_id: str) -> None:
        """Remove a role. Historical sessions keep referencing its id."""
        index = self._index_of(role_id)
        deleted = self._roles.pop(index)
        try:
            await self._storage.delete_role(role_id)
        except StorageError:
            self._roles.insert(index, deleted)
            raise

        logger.info("Role deleted", extra={"role_id": role_id, "role_name": deleted.name})
        self._notify()

    async def duplicate_role(self, role_id: str, new_name: str | None = None) -> Role:
        original = self.get_role_by_id(role_id)
        if original is None:
            raise RoleNotFoundError(role_id)

        return await self.create_role(
            RoleInput(
                name=new_name or f"{original.name} (Copy)",
                color_hex=original.color_hex,
                description=original.description,
                icon=original.icon,
            )
        )

    async def import_roles(
        self, roles: list[Role], replace_existing: bool = False
    ) -> tuple[int, list[str]]:
        """
        Create a new role for each entry; failures are collected, not raised.

        Returns:
            Tuple of (number imported, list of error messages)
        """
        if replace_existing:
            await self._storage.clear_roles()
            self._roles = []

        imported = 0
        errors: list[str] = []
        for role in roles:
            try:
                await self.create_role(
                    RoleInput(
                        name=role.name,
                        color_hex=role.color_hex,
                        description=role.description,
                        icon=role.icon,
                    )
                )
                imported += 1
            except (ValidationError, StorageError) as e:
                errors.append(f'Failed to import role "{role.name}": {e.message}')

        logger.info("Roles imported", extra={"imported": imported, "failed": len(errors)})
        if replace_existing and imported == 0:
            self._notify()
        return imported, errors

    def export_roles(self) -> list[Role]:
        """Copies of every role under fresh ids."""
        return [role.model_copy(update={"id": generate_id()}) for role in self._roles]

    async def reset(self) -> None:
        await self._storage.clear_roles()
        self._roles = []
        logger.info("Roles reset")
        self._notify()

    # Statistics

    def get_statistics(self) -> dict[str, Any]:
        colors = Counter(role.color_hex for role in self._roles)
        icons = Counter(role.icon for role in self._roles if role.icon)

        return {
            "total_roles": len(self._roles),
            "most_used_colors": [
                {"color": color, "count": count} for color, count in colors.most_common(5)
            ],
            "most_used_icons": [
                {"icon": icon, "count": count} for icon, count in icons.most_common(5)
            ],
            "recently_created": sorted(
                self.get_all_roles(), key=lambda r: r.created_at, reverse=True
            )[:5],
            "recently_updated": sorted(
                self.get_all_roles(), key=lambda r: r.updated_at, reverse=True
            )[:5],
        }

    def suggest_color(self) -> str:
        """A palette color not yet used by any role, or a random one if all are taken."""
        used = {role.color_hex.upper() for role in self._roles}
        unused = [color for color in DEFAULT_ROLE_COLORS if color not in used]
        return random.choice(unused or DEFAULT_ROLE_COLORS)

    def _index_of(self, role_id: str) -> int:
        for index, role in enumerate(self._roles):
            if role.id == role_id:
                return index
        raise RoleNotFoundError(role_id)
