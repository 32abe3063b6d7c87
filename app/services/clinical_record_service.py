"""Dossiers cliniques liés à un patient: tâches et consultations.

Écriture: la référence patient est résolue une fois (patient_resolver) puis
portée par exactement une des deux colonnes patient_id / unregistered_patient_id.
Lecture: la colonne renseignée indique l'espace du patient, sans sondage.
"""

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.clinical_record import Consultation, PatientLinkMixin, Task
from app.models.patient import Patient, UnregisteredPatient
from app.schemas.clinical import ConsultationCreate, TaskCreate, TaskUpdate
from app.schemas.enums import PatientKind, TaskStatus
from app.schemas.patient import NormalizedPatientView
from app.services.patient_resolver import ClassifiedPatient, normalize, resolve_for_write

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def _link_columns(classified: ClassifiedPatient) -> dict[str, UUID | None]:
    if classified.kind == PatientKind.REGISTERED:
        return {"patient_id": classified.patient.id, "unregistered_patient_id": None}
    return {"patient_id": None, "unregistered_patient_id": classified.patient.id}


def linked_patient_id(record: PatientLinkMixin) -> UUID:
    return record.patient_id or record.unregistered_patient_id


async def load_patient_views(
    db: AsyncSession, records: Sequence[PatientLinkMixin]
) -> dict[UUID, NormalizedPatientView]:
    """Vues normalisées des patients référencés, indexées par id patient."""
    registered_ids = {r.patient_id for r in records if r.patient_id is not None}
    unregistered_ids = {
        r.unregistered_patient_id for r in records if r.unregistered_patient_id is not None
    }
    views: dict[UUID, NormalizedPatientView] = {}

    if registered_ids:
        result = await db.execute(select(Patient).where(Patient.id.in_(registered_ids)))
        for patient in result.scalars().all():
            views[patient.id] = normalize(PatientKind.REGISTERED, patient)
    if unregistered_ids:
        result = await db.execute(
            select(UnregisteredPatient).where(UnregisteredPatient.id.in_(unregistered_ids))
        )
        for patient in result.scalars().all():
            views[patient.id] = normalize(PatientKind.UNREGISTERED, patient)
    return views


async def create_task(
    db: AsyncSession,
    organization_id: UUID,
    task_data: TaskCreate,
    created_by: str | None = None,
) -> tuple[Task, NormalizedPatientView]:
    """
    Crée une tâche pour un patient de l'un ou l'autre espace.

    Raises:
        UnknownPatientError: Référence patient non résolue
    """
    with tracer.start_as_current_span("create_task") as span:
        classified = await resolve_for_write(db, task_data, organization_id)
        task = Task(
            organization_id=organization_id,
            title=task_data.title,
            description=task_data.description,
            status=TaskStatus.PENDING.value,
            due_date=task_data.due_date,
            created_by=created_by,
            **_link_columns(classified),
        )
        db.add(task)
        await db.commit()
        await db.refresh(task)

        span.set_attribute("task.id", str(task.id))
        span.set_attribute("patient.kind", classified.kind.value)
        return task, normalize(classified.kind, classified.patient)


async def list_tasks(
    db: AsyncSession,
    organization_id: UUID,
    status: TaskStatus | None = None,
) -> list[Task]:
    query = select(Task).where(Task.organization_id == organization_id)
    if status is not None:
        query = query.where(Task.status == status.value)
    result = await db.execute(query.order_by(Task.created_at.desc()))
    return list(result.scalars().all())


async def get_task(db: AsyncSession, task_id: UUID) -> Task | None:
    """Lecture par id sans filtre d'organisation: le handler applique le scope tenant sur la ligne."""
    result = await db.execute(select(Task).where(Task.id == task_id))
    return result.scalar_one_or_none()


async def update_task(
    db: AsyncSession,
    task: Task,
    task_data: TaskUpdate,
) -> tuple[Task, dict[str, Any]]:
    """Mise à jour partielle. La référence patient d'une tâche n'est pas modifiable."""
    changes: dict[str, Any] = {}
    for field, value in task_data.model_dump(exclude_unset=True).items():
        if value is None and field in ("title", "status"):
            continue
        if isinstance(value, TaskStatus):
            value = value.value
        current = getattr(task, field)
        if value != current:
            changes[field] = {
                "from": current.isoformat() if hasattr(current, "isoformat") else current,
                "to": value.isoformat() if hasattr(value, "isoformat") else value,
            }
            setattr(task, field, value)

    if changes:
        await db.commit()
        await db.refresh(task)
    return task, changes


async def create_consultation(
    db: AsyncSession,
    organization_id: UUID,
    consultation_data: ConsultationCreate,
    doctor_id: UUID | None = None,
) -> tuple[Consultation, NormalizedPatientView]:
    """
    Crée une consultation.

    Raises:
        UnknownPatientError: Référence patient non résolue
    """
    with tracer.start_as_current_span("create_consultation") as span:
        classified = await resolve_for_write(db, consultation_data, organization_id)
        consultation = Consultation(
            organization_id=organization_id,
            doctor_id=doctor_id,
            chief_complaint=consultation_data.chief_complaint,
            diagnosis=consultation_data.diagnosis,
            started_at=consultation_data.started_at or datetime.now(UTC),
            **_link_columns(classified),
        )
        db.add(consultation)
        await db.commit()
        await db.refresh(consultation)

        span.set_attribute("consultation.id", str(consultation.id))
        span.set_attribute("patient.kind", classified.kind.value)
        return consultation, normalize(classified.kind, classified.patient)


async def list_consultations(db: AsyncSession, organization_id: UUID) -> list[Consultation]:
    result = await db.execute(
        select(Consultation)
        .where(Consultation.organization_id == organization_id)
        .order_by(Consultation.created_at.desc())
    )
    return list(result.scalars().all())
