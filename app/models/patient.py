"""Modèles Patient et UnregisteredPatient.

Deux espaces d'identité disjoints:
- Patient: patient inscrit sur la plateforme (compte Keycloak possible)
- UnregisteredPatient: patient de passage créé par le personnel d'une clinique

Un identifiant national présent dans l'une des deux tables bloque la
création d'un doublon dans l'autre (voir patient_resolver).
"""

import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class Patient(Base):
    """Patient inscrit, visible par toutes les organisations qui le soignent."""

    __tablename__ = "patients"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    auth_id: Mapped[str | None] = mapped_column(
        String(255), unique=True, nullable=True, comment="Sujet Keycloak du patient"
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    identifier: Mapped[str | None] = mapped_column(
        String(50),
        unique=True,
        nullable=True,
        index=True,
        comment="Identifiant national (cédule, passeport)",
    )
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    birth_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    sex: Mapped[str | None] = mapped_column(String(10), nullable=True)

    # Accès d'urgence public par QR code
    emergency_qr_token: Mapped[str | None] = mapped_column(
        String(128), unique=True, nullable=True, index=True
    )
    emergency_qr_enabled: Mapped[bool] = mapped_column(nullable=False, default=False)

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
        return f"<Patient(id={self.id}, identifier='{self.identifier}')>"


class UnregisteredPatient(Base):
    """Patient de passage sans compte, rattaché à l'organisation qui l'a créé."""

    __tablename__ = "unregistered_patients"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id"), nullable=False, index=True
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    identification: Mapped[str | None] = mapped_column(
        String(50),
        unique=True,
        nullable=True,
        index=True,
        comment="Identifiant national (cédule, passeport)",
    )
    birth_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    sex: Mapped[str | None] = mapped_column(String(10), nullable=True)
    phone: Mapped[str] = mapped_column(String(30), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Antécédents déclarés à l'accueil
    allergies: Mapped[str | None] = mapped_column(Text, nullable=True)
    chronic_conditions: Mapped[str | None] = mapped_column(Text, nullable=True)
    current_medication: Mapped[str | None] = mapped_column(Text, nullable=True)
    motive: Mapped[str | None] = mapped_column(Text, nullable=True, comment="Motif de visite")

    created_by: Mapped[str | None] = mapped_column(
        String(255), nullable=True, comment="User ou RoleUser créateur"
    )
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
        return f"<UnregisteredPatient(id={self.id}, identification='{self.identification}')>"
