"""Modèle AuditEntry: journal append-only des actions privilégiées."""

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class AuditEntry(Base):
    """
    Entrée du journal d'audit.

    Jamais modifiée ni supprimée. Les noms de l'acteur sont copiés au moment
    de l'écriture pour rester lisibles même si le role user change ensuite.
    Pas de clé d'idempotence: une requête rejouée peut produire un doublon.
    """

    __tablename__ = "audit_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    role_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    role_user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, nullable=True, comment="User applicatif auteur (si pas un role user)"
    )
    user_first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    user_last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    user_identifier: Mapped[str | None] = mapped_column(String(255), nullable=True)
    action_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    module: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    action_details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
        index=True,
    )

    def __repr__(self) -> str:
        return (
            f"<AuditEntry(id={self.id}, action_type='{self.action_type}', "
            f"module='{self.module}', entity_type='{self.entity_type}')>"
        )
