"""Input sanitizing and role validation helpers."""

import re
import uuid
from collections.abc import Iterable

from roleswitch.schemas.domain import Role, RoleInput

HEX_COLOR_PATTERN = re.compile(r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")
UNSAFE_CHARS_PATTERN = re.compile(r"[<>\"'&]")

MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500


def generate_id() -> str:
    return uuid.uuid4().hex


def sanitize_input(value: str) -> str:
    """Drop markup-significant characters and trim whitespace."""
    return UNSAFE_CHARS_PATTERN.sub("", value).strip()


def sanitize_role_input(data: RoleInput) -> RoleInput:
    """Sanitized copy of role form data. An empty description becomes None."""
    description = sanitize_input(data.description) if data.description else None
    return data.model_copy(
        update={"name": sanitize_input(data.name or ""), "description": description or None}
    )


def is_valid_hex_color(color: str | None) -> bool:
    return bool(color) and HEX_COLOR_PATTERN.match(color) is not None


def validate_role_data(data: RoleInput, existing_roles: Iterable[Role] = ()) -> list[str]:
    """
    Check role form data against the registry constraints.

    Args:
        data: Candidate role fields
        existing_roles: Roles the name must not collide with (exclude the
            role being updated)

    Returns:
        List of human-readable errors; empty when the data is valid
    """
    errors: list[str] = []

    name = (data.name or "").strip()
    if not name:
        errors.append("Role name is required")
    elif len(name) > MAX_NAME_LENGTH:
        errors.append(f"Role name must be {MAX_NAME_LENGTH} characters or less")
    elif any(role.name.lower() == name.lower() for role in existing_roles):
        errors.append("Role name already exists")

    if data.description and len(data.description) > MAX_DESCRIPTION_LENGTH:
        errors.append(f"Description must be {MAX_DESCRIPTION_LENGTH} characters or less")

    if not is_valid_hex_color(data.color_hex):
        errors.append("Invalid color format. Please use hex format (e.g., #FF0000)")

    return errors
