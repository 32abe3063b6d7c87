"""Schémas Pydantic des patients et de leur résolution d'identité.

PatientRef est l'union étiquetée qui remplace les sondages répétés des deux
tables: une fois l'id classé à la frontière d'entrée, le reste du code
manipule une référence typée.
"""

from datetime import date
from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.enums import PatientKind
from app.schemas.utils import CamelModel, Email, NationalId, NonEmptyStr, PhoneNumber


class RegisteredPatientRef(BaseModel):
    kind: Literal["registered"] = "registered"
    id: UUID


class UnregisteredPatientRef(BaseModel):
    kind: Literal["unregistered"] = "unregistered"
    id: UUID


PatientRef = Annotated[
    RegisteredPatientRef | UnregisteredPatientRef,
    Field(discriminator="kind"),
]


class NormalizedPatientView(CamelModel):
    """Vue d'identité patient de forme stable, quelle que soit la table d'origine."""

    id: UUID
    kind: PatientKind
    first_name: str
    last_name: str
    identifier: str | None = None
    email: str | None = None
    phone: str | None = None
    birth_date: date | None = None
    sex: str | None = None


class PatientCreate(BaseModel):
    """Création d'un patient inscrit."""

    first_name: NonEmptyStr = Field(..., max_length=100, examples=["María"])
    last_name: NonEmptyStr = Field(..., max_length=100, examples=["González"])
    identifier: NationalId | None = None
    email: Email | None = None
    phone: PhoneNumber | None = None
    birth_date: date | None = None
    sex: Literal["M", "F", "O"] | None = None
    auth_id: str | None = Field(None, max_length=255, description="Sujet Keycloak, si le patient a un compte")


class UnregisteredPatientCreate(BaseModel):
    """Création d'un patient de passage. Prénom, nom et téléphone sont obligatoires."""

    first_name: NonEmptyStr = Field(..., max_length=100)
    last_name: NonEmptyStr = Field(..., max_length=100)
    phone: PhoneNumber
    identification: NationalId | None = None
    birth_date: date | None = None
    sex: Literal["M", "F", "O"] | None = None
    email: Email | None = None
    address: str | None = Field(None, max_length=500)
    allergies: str | None = None
    chronic_conditions: str | None = None
    current_medication: str | None = None
    motive: str | None = None


class PatientCreatedResponse(BaseModel):
    success: bool = True
    patient: NormalizedPatientView
