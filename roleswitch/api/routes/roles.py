"""Role registry endpoints."""

from typing import Any

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from roleswitch.api.deps import get_registry
from roleswitch.core.exceptions import RoleNotFoundError
from roleswitch.schemas import Role, RoleInput, RoleUpdate
from roleswitch.services.role_registry import RoleRegistry

router = APIRouter()


class DuplicateRoleRequest(BaseModel):
    """Duplicate role request."""

    name: str | None = Field(
        default=None,
        description="Name for the copy; defaults to '<name> (Copy)'",
    )


class ImportRolesRequest(BaseModel):
    roles: list[Role]
    replace_existing: bool = False


class ImportRolesResponse(BaseModel):
    imported: int
    errors: list[str]


@router.get("", response_model=list[Role])
async def list_roles(
    q: str | None = Query(default=None, max_length=100, description="Search name and description"),
    color: str | None = Query(default=None, max_length=7, description="Filter by hex color"),
    icon: str | None = Query(default=None, max_length=64, description="Filter by icon name"),
    registry: RoleRegistry = Depends(get_registry),
) -> list[Role]:
    """List roles, optionally filtered."""
    roles = registry.search_roles(q) if q else registry.get_all_roles()
    if color:
        roles = [role for role in roles if role.color_hex == color]
    if icon:
        roles = [role for role in roles if role.icon == icon]
    return roles


@router.get("/statistics")
async def get_role_statistics(
    registry: RoleRegistry = Depends(get_registry),
) -> dict[str, Any]:
    return registry.get_statistics()


@router.get("/suggest-color")
async def suggest_color(
    registry: RoleRegistry = Depends(get_registry),
) -> dict[str, str]:
    return {"color_hex": registry.suggest_color()}


@router.get("/export", response_model=list[Role])
async def export_roles(
    registry: RoleRegistry = Depends(get_registry),
) -> list[Role]:
    return registry.export_roles()


@router.post("/import", response_model=ImportRolesResponse)
async def import_roles(
    request: ImportRolesRequest,
    registry: RoleRegistry = Depends(get_registry),
) -> ImportRolesResponse:
    imported, errors = await registry.import_roles(request.roles, request.replace_existing)
    return ImportRolesResponse(imported=imported, errors=errors)


@router.get("/{role_id}", response_model=Role)
async def get_role(
    role_id: str,
    registry: RoleRegistry = Depends(get_registry),
) -> Role:
    role = registry.get_role_by_id(role_id)
    if role is None:
        raise RoleNotFoundError(role_id)
    return role


@router.post("", response_model=Role, status_code=status.HTTP_201_CREATED)
async def create_role(
    data: RoleInput,
    registry: RoleRegistry = Depends(get_registry),
) -> Role:
    """Create a role. All validation failures are returned together."""
    return await registry.create_role(data)


@router.patch("/{role_id}", response_model=Role)
async def update_role(
    role_id: str,
    changes: RoleUpdate,
    registry: RoleRegistry = Depends(get_registry),
) -> Role:
    return await registry.update_role(role_id, changes)


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: str,
    registry: RoleRegistry = Depends(get_registry),
) -> None:
    """Delete a role. Past sessions keep its id."""
    await registry.delete_role(role_id)


@router.post("/{role_id}/duplicate", response_model=Role, status_code=status.HTTP_201_CREATED)
async def duplicate_role(
    role_id: str,
    request: DuplicateRoleRequest | None = None,
    registry: RoleRegistry = Depends(get_registry),
) -> Role:
    return await registry.duplicate_role(role_id, request.name if request else None)
