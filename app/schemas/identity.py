"""Identités résolues par le contrôle d'accès.

Deux pistes d'authentification indépendantes:
- AppUserIdentity: User applicatif vérifié par Keycloak (bearer token)
- RoleUserIdentity: membre du personnel authentifié par cookie de session signé
"""

from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.enums import UserRole
from app.schemas.session import SessionDescriptor


class AppUserIdentity(BaseModel):
    """User applicatif résolu depuis le sujet Keycloak."""

    kind: Literal["user"] = "user"
    user_id: UUID
    auth_id: str
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    role: UserRole
    organization_id: UUID | None = None

    @property
    def actor_id(self) -> str:
        return str(self.user_id)


class RoleUserIdentity(BaseModel):
    """Role user porteur d'un descripteur de session (snapshot du login)."""

    kind: Literal["role_user"] = "role_user"
    session: SessionDescriptor

    @property
    def organization_id(self) -> UUID:
        return self.session.organization_id

    @property
    def actor_id(self) -> str:
        return str(self.session.role_user_id)


Identity = AppUserIdentity | RoleUserIdentity


class IdentityResponse(BaseModel):
    """Réponse de GET /identity/me."""

    user_id: UUID = Field(..., description="ID du User local")
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    role: UserRole
    organization_id: UUID | None = None
