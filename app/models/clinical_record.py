"""Dossiers cliniques liés à un patient (tâches, consultations).

Chaque dossier référence exactement un patient: soit inscrit (patient_id),
soit de passage (unregistered_patient_id). La contrainte CHECK garantit
le XOR en base, quelle que soit la voie d'écriture.
"""

import uuid
from datetime import date, datetime

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from app.core.database import Base


class PatientLinkMixin:
    """Colonnes organisation + référence patient XOR partagées par les dossiers cliniques."""

    @declared_attr.directive
    def __table_args__(cls):
        return (
            CheckConstraint(
                "(patient_id IS NULL) <> (unregistered_patient_id IS NULL)",
                name=f"ck_{cls.__tablename__}_patient_xor",
            ),
        )

    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id"), nullable=False, index=True
    )
    patient_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("patients.id"), nullable=True, index=True
    )
    unregistered_patient_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("unregistered_patients.id"), nullable=True, index=True
    )


class Task(PatientLinkMixin, Base):
    """Tâche de suivi assignée au sein d'une organisation."""

    __tablename__ = "tasks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
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

    def __repr__(self) -> str:
        return f"<Task(id={self.id}, status='{self.status}')>"


class Consultation(PatientLinkMixin, Base):
    """Consultation médicale."""

    __tablename__ = "consultations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    doctor_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=True, comment="Médecin responsable"
    )
    chief_complaint: Mapped[str | None] = mapped_column(Text, nullable=True)
    diagnosis: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
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

    def __repr__(self) -> str:
        return f"<Consultation(id={self.id}, doctor_id={self.doctor_id})>"
