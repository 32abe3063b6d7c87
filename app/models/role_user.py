"""Modèle RoleUser: personnel interne (accueil, assistants) sans compte applicatif complet."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base
from app.models.role import Role


class RoleUser(Base):
    """
    Membre du personnel lié à un rôle personnalisé.

    Invariants:
    - organization_id est égal à celui de son rôle
    - identifier (cédule) est unique dans l'organisation
    """

    __tablename__ = "role_users"
    __table_args__ = (
        UniqueConstraint("organization_id", "identifier", name="uq_role_users_org_identifier"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id"), nullable=False, index=True
    )
    role_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("roles.id"), nullable=False, index=True
    )
    auth_id: Mapped[str | None] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
        comment="Identifiant du compte Keycloak lié",
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    identifier: Mapped[str] = mapped_column(
        String(50), nullable=False, index=True, comment="Identifiant national (cédule)"
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True, index=True)
    last_access_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, comment="Dernier login réussi"
    )
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    role: Mapped[Role] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<RoleUser(id={self.id}, identifier='{self.identifier}', "
            f"role_id={self.role_id}, is_active={self.is_active})>"
        )
