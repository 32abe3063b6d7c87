"""Schémas des sessions role user (login, verify, logout)."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from app.schemas.access import PermissionEntry
from app.schemas.utils import CamelModel


class SessionDescriptor(CamelModel):
    """
    Résultat matérialisé d'un login role user.

    C'est un snapshot: les modifications de permissions postérieures au login
    ne sont visibles qu'après un nouveau login ou un refresh explicite.
    """

    role_user_id: UUID
    role_id: UUID
    organization_id: UUID
    first_name: str
    last_name: str
    identifier: str
    email: str | None = None
    role_name: str
    role_description: str | None = None
    permissions: list[PermissionEntry] = Field(default_factory=list)
    issued_at: datetime


class LoginRequest(CamelModel):
    """
    Identifiant (cédule) ou email, plus mot de passe.

    Les champs sont optionnels ici: l'absence est signalée en 400 par le
    service avec un message lisible, pas en 422.
    """

    identifier: str | None = Field(None, description="Cédule du role user", examples=["V-12345678"])
    email: str | None = Field(None, description="Email du compte", examples=["ana@clinica.example"])
    password: str | None = Field(None, description="Mot de passe")


class SessionRole(CamelModel):
    id: UUID
    name: str
    description: str | None = None


class SessionUser(CamelModel):
    """Vue client d'un descripteur de session."""

    id: UUID
    first_name: str
    last_name: str
    identifier: str
    role: SessionRole
    organization_id: UUID
    permissions: list[PermissionEntry]

    @classmethod
    def from_descriptor(cls, descriptor: SessionDescriptor) -> "SessionUser":
        return cls(
            id=descriptor.role_user_id,
            first_name=descriptor.first_name,
            last_name=descriptor.last_name,
            identifier=descriptor.identifier,
            role=SessionRole(
                id=descriptor.role_id,
                name=descriptor.role_name,
                description=descriptor.role_description,
            ),
            organization_id=descriptor.organization_id,
            permissions=descriptor.permissions,
        )


class LoginResponse(CamelModel):
    success: bool = True
    user: SessionUser


class VerifyResponse(CamelModel):
    """Toujours renvoyé avec un statut 200, authentifié ou non."""

    authenticated: bool
    user: SessionUser | None = None


class LogoutResponse(CamelModel):
    success: bool = True
