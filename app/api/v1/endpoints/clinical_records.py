"""Endpoints des dossiers cliniques liés à un patient (tâches, consultations).

Le scope tenant est vérifié sur l'organization_id porté par la ligne lue,
pas seulement sur celui de la session.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import get_session, get_session_factory
from app.core.exceptions import NotFoundError
from app.core.guards import Denied
from app.core.security import require_permission
from app.core.tenancy import enforce, require_organization
from app.models.clinical_record import Consultation, Task
from app.schemas.clinical import (
    ConsultationCreate,
    ConsultationResponse,
    TaskCreate,
    TaskResponse,
    TaskUpdate,
)
from app.schemas.enums import (
    CLINICAL_STAFF_ROLES,
    ActionType,
    Module,
    PermissionAction,
    TaskStatus,
)
from app.schemas.identity import AppUserIdentity, Identity
from app.schemas.patient import NormalizedPatientView
from app.services import audit_service, clinical_record_service
from app.services.clinical_record_service import linked_patient_id

tasks_router = APIRouter()
consultations_router = APIRouter()


def _scope(identity: Identity) -> UUID:
    result = require_organization(identity)
    if isinstance(result, Denied):
        raise result.error
    return result.value


def _task_response(task: Task, patient: NormalizedPatientView | None) -> TaskResponse:
    return TaskResponse(
        id=task.id,
        organization_id=task.organization_id,
        patient_id=task.patient_id,
        unregistered_patient_id=task.unregistered_patient_id,
        patient=patient,
        title=task.title,
        description=task.description,
        status=TaskStatus(task.status),
        due_date=task.due_date,
        created_by=task.created_by,
        created_at=task.created_at,
    )


def _consultation_response(
    consultation: Consultation, patient: NormalizedPatientView | None
) -> ConsultationResponse:
    return ConsultationResponse(
        id=consultation.id,
        organization_id=consultation.organization_id,
        patient_id=consultation.patient_id,
        unregistered_patient_id=consultation.unregistered_patient_id,
        patient=patient,
        doctor_id=consultation.doctor_id,
        chief_complaint=consultation.chief_complaint,
        diagnosis=consultation.diagnosis,
        started_at=consultation.started_at,
        created_at=consultation.created_at,
    )


async def _get_scoped_task(db: AsyncSession, identity: Identity, task_id: UUID) -> Task:
    task = await clinical_record_service.get_task(db, task_id)
    if task is None:
        raise NotFoundError(
            detail=f"Task {task_id} not found", resource_type="Task", resource_id=str(task_id)
        )
    scope = enforce(identity, task.organization_id)
    if isinstance(scope, Denied):
        raise scope.error
    return task


# =============================================================================
# Tâches
# =============================================================================


@tasks_router.post(
    "",
    response_model=TaskResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Créer une tâche",
)
async def create_task(
    task_data: TaskCreate,
    request: Request,
    db: AsyncSession = Depends(get_session),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    identity: Identity = Depends(
        require_permission(Module.TASKS, PermissionAction.CREATE, CLINICAL_STAFF_ROLES)
    ),
) -> TaskResponse:
    organization_id = _scope(identity)
    task, patient = await clinical_record_service.create_task(
        db, organization_id, task_data, created_by=identity.actor_id
    )
    await audit_service.record_action(
        session_factory,
        identity,
        organization_id,
        ActionType.CREATE,
        Module.TASKS,
        entity_type="task",
        entity_id=str(task.id),
        action_details={"title": task.title, "patient_kind": patient.kind.value},
        request=request,
    )
    return _task_response(task, patient)


@tasks_router.get("", response_model=list[TaskResponse], summary="Lister les tâches")
async def list_tasks(
    status_filter: TaskStatus | None = Query(None, alias="status"),
    db: AsyncSession = Depends(get_session),
    identity: Identity = Depends(
        require_permission(Module.TASKS, PermissionAction.VIEW, CLINICAL_STAFF_ROLES)
    ),
) -> list[TaskResponse]:
    organization_id = _scope(identity)
    tasks = await clinical_record_service.list_tasks(db, organization_id, status_filter)
    views = await clinical_record_service.load_patient_views(db, tasks)
    return [_task_response(task, views.get(linked_patient_id(task))) for task in tasks]


@tasks_router.get("/{task_id}", response_model=TaskResponse, summary="Détail d'une tâche")
async def get_task(
    task_id: UUID,
    db: AsyncSession = Depends(get_session),
    identity: Identity = Depends(
        require_permission(Module.TASKS, PermissionAction.VIEW, CLINICAL_STAFF_ROLES)
    ),
) -> TaskResponse:
    task = await _get_scoped_task(db, identity, task_id)
    views = await clinical_record_service.load_patient_views(db, [task])
    return _task_response(task, views.get(linked_patient_id(task)))


@tasks_router.patch("/{task_id}", response_model=TaskResponse, summary="Modifier une tâche")
async def update_task(
    task_id: UUID,
    task_data: TaskUpdate,
    request: Request,
    db: AsyncSession = Depends(get_session),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    identity: Identity = Depends(
        require_permission(Module.TASKS, PermissionAction.UPDATE, CLINICAL_STAFF_ROLES)
    ),
) -> TaskResponse:
    task = await _get_scoped_task(db, identity, task_id)
    task, changes = await clinical_record_service.update_task(db, task, task_data)
    if changes:
        await audit_service.record_action(
            session_factory,
            identity,
            task.organization_id,
            ActionType.UPDATE,
            Module.TASKS,
            entity_type="task",
            entity_id=str(task.id),
            action_details=changes,
            request=request,
        )
    views = await clinical_record_service.load_patient_views(db, [task])
    return _task_response(task, views.get(linked_patient_id(task)))


# =============================================================================
# Consultations
# =============================================================================


@consultations_router.post(
    "",
    response_model=ConsultationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Créer une consultation",
)
async def create_consultation(
    consultation_data: ConsultationCreate,
    request: Request,
    db: AsyncSession = Depends(get_session),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    identity: Identity = Depends(
        require_permission(Module.CONSULTATIONS, PermissionAction.CREATE, CLINICAL_STAFF_ROLES)
    ),
) -> ConsultationResponse:
    organization_id = _scope(identity)
    doctor_id = identity.user_id if isinstance(identity, AppUserIdentity) else None
    consultation, patient = await clinical_record_service.create_consultation(
        db, organization_id, consultation_data, doctor_id=doctor_id
    )
    await audit_service.record_action(
        session_factory,
        identity,
        organization_id,
        ActionType.CREATE,
        Module.CONSULTATIONS,
        entity_type="consultation",
        entity_id=str(consultation.id),
        action_details={"patient_kind": patient.kind.value},
        request=request,
    )
    return _consultation_response(consultation, patient)


@consultations_router.get(
    "", response_model=list[ConsultationResponse], summary="Lister les consultations"
)
async def list_consultations(
    db: AsyncSession = Depends(get_session),
    identity: Identity = Depends(
        require_permission(Module.CONSULTATIONS, PermissionAction.VIEW, CLINICAL_STAFF_ROLES)
    ),
) -> list[ConsultationResponse]:
    organization_id = _scope(identity)
    consultations = await clinical_record_service.list_consultations(db, organization_id)
    views = await clinical_record_service.load_patient_views(db, consultations)
    return [
        _consultation_response(c, views.get(linked_patient_id(c))) for c in consultations
    ]
