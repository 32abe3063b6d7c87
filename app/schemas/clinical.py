"""Schémas des dossiers cliniques (tâches, consultations).

Une création accepte exactement une des trois formes de référence patient:
- `patient`: référence typée {kind, id}
- `patient_id`: id nu, classé une seule fois à l'entrée
- `unregistered_patient_id`: id explicite de patient de passage
"""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from app.schemas.enums import TaskStatus
from app.schemas.patient import NormalizedPatientView, PatientRef
from app.schemas.utils import NonEmptyStr


class PatientLinkInput(BaseModel):
    patient: PatientRef | None = None
    patient_id: UUID | None = None
    unregistered_patient_id: UUID | None = None

    @model_validator(mode="after")
    def check_single_patient_reference(self):
        provided = [
            value
            for value in (self.patient, self.patient_id, self.unregistered_patient_id)
            if value is not None
        ]
        if len(provided) != 1:
            raise ValueError(
                "Exactly one of patient, patient_id or unregistered_patient_id must be provided"
            )
        return self


class TaskCreate(PatientLinkInput):
    title: NonEmptyStr = Field(..., max_length=255, examples=["Appeler pour résultats"])
    description: str | None = Field(None, max_length=5000)
    due_date: date | None = None


class TaskUpdate(BaseModel):
    title: NonEmptyStr | None = Field(None, max_length=255)
    description: str | None = Field(None, max_length=5000)
    status: TaskStatus | None = None
    due_date: date | None = None


class TaskResponse(BaseModel):
    id: UUID
    organization_id: UUID
    patient_id: UUID | None = None
    unregistered_patient_id: UUID | None = None
    patient: NormalizedPatientView | None = None
    title: str
    description: str | None = None
    status: TaskStatus
    due_date: date | None = None
    created_by: str | None = None
    created_at: datetime | None = None


class ConsultationCreate(PatientLinkInput):
    chief_complaint: str | None = Field(None, max_length=5000)
    diagnosis: str | None = Field(None, max_length=5000)
    started_at: datetime | None = None


class ConsultationResponse(BaseModel):
    id: UUID
    organization_id: UUID
    patient_id: UUID | None = None
    unregistered_patient_id: UUID | None = None
    patient: NormalizedPatientView | None = None
    doctor_id: UUID | None = None
    chief_complaint: str | None = None
    diagnosis: str | None = None
    started_at: datetime | None = None
    created_at: datetime | None = None
