"""Schémas de la matrice de permissions des rôles personnalisés.

Remplace le JSON libre par module: un module est une valeur de l'énumération
Module, ses capacités sont la structure fixe {view, create, update, delete}.
"""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.schemas.enums import Module, PermissionAction
from app.schemas.utils import CamelModel


class Capabilities(BaseModel):
    """Matrice booléenne d'un module. Toute clé inconnue est rejetée."""

    model_config = ConfigDict(extra="forbid")

    view: bool = False
    create: bool = False
    update: bool = False
    delete: bool = False

    def allows(self, action: PermissionAction) -> bool:
        return bool(getattr(self, action.value))


class PermissionEntry(CamelModel):
    """Forme consommée par toutes les routes protégées: {id, module, permissions}."""

    id: UUID
    module: Module
    permissions: Capabilities


class ModulePermissionInput(CamelModel):
    """Capacités demandées pour un module lors d'un remplacement de permissions."""

    module: Module = Field(..., description="Module fonctionnel", examples=["citas"])
    permissions: Capabilities = Field(default_factory=Capabilities)


def ensure_unique_modules(modules: list[ModulePermissionInput]) -> list[ModulePermissionInput]:
    """Refuse un même module listé deux fois dans un remplacement."""
    seen: set[Module] = set()
    for item in modules:
        if item.module in seen:
            raise ValueError(f"Module '{item.module.value}' listé plusieurs fois")
        seen.add(item.module)
    return modules


class PermissionReplaceRequest(CamelModel):
    """Nouvel ensemble complet de permissions d'un rôle (remplacement intégral)."""

    modules: list[ModulePermissionInput] = Field(default_factory=list)

    @field_validator("modules")
    @classmethod
    def validate_unique_modules(
        cls, v: list[ModulePermissionInput]
    ) -> list[ModulePermissionInput]:
        return ensure_unique_modules(v)


def find_capabilities(
    permissions: list[PermissionEntry], module: Module
) -> Capabilities | None:
    """Retourne les capacités d'un module dans une liste de permissions, ou None."""
    for entry in permissions:
        if entry.module == module:
            return entry.permissions
    return None
