"""Endpoints API des patients des deux espaces d'identité.

- POST /patients: patient inscrit
- POST /unregistered-patients: patient de passage de l'organisation de l'appelant
- GET  /patients/resolve/{patient_id}: classification d'un id nu + vue normalisée
- GET  /emergency/{token}: lookup public par QR code d'urgence
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import get_session, get_session_factory
from app.core.exceptions import NotFoundError
from app.core.guards import Denied
from app.core.security import require_permission
from app.core.tenancy import organization_of, require_organization
from app.schemas.enums import CLINICAL_STAFF_ROLES, ActionType, Module, PermissionAction
from app.schemas.identity import Identity
from app.schemas.patient import (
    NormalizedPatientView,
    PatientCreate,
    PatientCreatedResponse,
    UnregisteredPatientCreate,
)
from app.services import audit_service, patient_resolver, patient_service

logger = logging.getLogger(__name__)

router = APIRouter()
unregistered_router = APIRouter()
emergency_router = APIRouter()

can_create_patient = require_permission(
    Module.PATIENTS, PermissionAction.CREATE, owner_roles=CLINICAL_STAFF_ROLES
)
can_view_patient = require_permission(
    Module.PATIENTS, PermissionAction.VIEW, owner_roles=CLINICAL_STAFF_ROLES
)


@router.post(
    "",
    response_model=PatientCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Créer un patient inscrit",
    description="L'identifiant national est vérifié dans les deux espaces patients (409 avec l'id existant)",
)
async def create_patient(
    patient: PatientCreate,
    db: AsyncSession = Depends(get_session),
    identity: Identity = Depends(can_create_patient),
) -> PatientCreatedResponse:
    view = await patient_service.create_patient(db, patient)
    logger.info(f"Registered patient {view.id} created by {identity.kind} {identity.actor_id}")
    return PatientCreatedResponse(patient=view)


@router.get(
    "/resolve/{patient_id}",
    response_model=NormalizedPatientView,
    summary="Résoudre un id patient",
    description="Classe l'id (inscrit puis de passage) et retourne la vue normalisée",
)
async def resolve_patient(
    patient_id: UUID,
    db: AsyncSession = Depends(get_session),
    identity: Identity = Depends(can_view_patient),
) -> NormalizedPatientView:
    classified = await patient_resolver.classify(db, patient_id)
    if not patient_resolver.is_visible_to(classified, organization_of(identity)):
        raise NotFoundError(
            detail=f"Patient {patient_id} not found",
            resource_type="Patient",
            resource_id=str(patient_id),
        )
    return patient_resolver.normalize(classified.kind, classified.patient)


@unregistered_router.post(
    "",
    response_model=PatientCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Créer un patient de passage",
    description="Prénom, nom et téléphone requis; identification vérifiée dans les deux espaces",
)
async def create_unregistered_patient(
    patient: UnregisteredPatientCreate,
    request: Request,
    db: AsyncSession = Depends(get_session),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    identity: Identity = Depends(can_create_patient),
) -> PatientCreatedResponse:
    scope = require_organization(identity)
    if isinstance(scope, Denied):
        raise scope.error

    created, view = await patient_service.create_unregistered_patient(
        db, scope.value, patient, created_by=identity.actor_id
    )
    await audit_service.record_action(
        session_factory,
        identity,
        scope.value,
        ActionType.CREATE,
        Module.PATIENTS,
        entity_type="unregistered_patient",
        entity_id=str(created.id),
        action_details={"identification": created.identification},
        request=request,
    )
    return PatientCreatedResponse(patient=view)


@emergency_router.get(
    "/{token}",
    response_model=NormalizedPatientView,
    summary="Accès d'urgence",
    description="Lookup public par jeton de QR code, si l'accès d'urgence est activé par le patient",
)
async def emergency_lookup(
    token: str,
    db: AsyncSession = Depends(get_session),
) -> NormalizedPatientView:
    view = await patient_service.get_by_emergency_token(db, token)
    if view is None:
        raise NotFoundError(
            detail="Emergency profile not found", resource_type="Patient", resource_id=None
        )
    return view
