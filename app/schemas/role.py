"""Schémas des rôles personnalisés et des role users."""

from datetime import datetime
from uuid import UUID

from pydantic import Field, field_validator

from app.schemas.access import ModulePermissionInput, PermissionEntry, ensure_unique_modules
from app.schemas.utils import CamelModel, Description, Email, NationalId, NonEmptyStr, PhoneNumber


class RoleCreate(CamelModel):
    role_name: NonEmptyStr = Field(..., max_length=100, examples=["Recepción"])
    role_description: Description | None = None
    permissions: list[ModulePermissionInput] = Field(default_factory=list)

    @field_validator("permissions")
    @classmethod
    def validate_unique_modules(
        cls, v: list[ModulePermissionInput]
    ) -> list[ModulePermissionInput]:
        return ensure_unique_modules(v)


class RoleUpdate(CamelModel):
    """Mise à jour partielle. `permissions`, si fourni, remplace intégralement la matrice."""

    role_name: NonEmptyStr | None = Field(None, max_length=100)
    role_description: Description | None = None
    is_active: bool | None = None
    permissions: list[ModulePermissionInput] | None = None

    @field_validator("permissions")
    @classmethod
    def validate_unique_modules(
        cls, v: list[ModulePermissionInput] | None
    ) -> list[ModulePermissionInput] | None:
        if v is None:
            return v
        return ensure_unique_modules(v)


class RoleResponse(CamelModel):
    id: UUID
    organization_id: UUID
    role_name: str
    role_description: str | None = None
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None
    permissions: list[PermissionEntry] = Field(default_factory=list)


class RoleDeactivationResponse(CamelModel):
    success: bool = True
    role_id: UUID
    deactivated_role_users: int


class RoleUserCreate(CamelModel):
    first_name: NonEmptyStr = Field(..., max_length=100, examples=["Ana"])
    last_name: NonEmptyStr = Field(..., max_length=100, examples=["Pérez"])
    identifier: NationalId
    email: Email
    phone: PhoneNumber | None = None
    password: str = Field(..., description="Mot de passe initial du compte")


class RoleUserUpdate(CamelModel):
    first_name: NonEmptyStr | None = Field(None, max_length=100)
    last_name: NonEmptyStr | None = Field(None, max_length=100)
    identifier: NationalId | None = None
    phone: PhoneNumber | None = None
    is_active: bool | None = None


class RoleUserResponse(CamelModel):
    id: UUID
    organization_id: UUID
    role_id: UUID
    first_name: str
    last_name: str
    identifier: str
    email: str
    phone: str | None = None
    is_active: bool
    last_access_at: datetime | None = None
    created_at: datetime | None = None
