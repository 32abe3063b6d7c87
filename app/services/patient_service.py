"""Service metier pour la creation des patients des deux espaces d'identite.

Pattern d'orchestration commun:
1. Verifier l'unicite globale de l'identifiant national (deux tables)
2. Inserer la ligne
3. Retourner la vue normalisee
"""

import logging
from uuid import UUID

from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError
from app.models.patient import Patient, UnregisteredPatient
from app.schemas.enums import PatientKind
from app.schemas.patient import NormalizedPatientView, PatientCreate, UnregisteredPatientCreate
from app.services.patient_resolver import ensure_identifier_available, normalize

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


async def _commit_or_conflict(db: AsyncSession) -> None:
    # Course entre la verification et l'insertion: la contrainte unique tranche
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.warning(f"Patient insert rejected by constraints: {e}")
        raise ConflictError(detail="Patient already exists", conflicting_resource=None) from e


async def create_patient(
    db: AsyncSession,
    patient_data: PatientCreate,
) -> NormalizedPatientView:
    """
    Cree un patient inscrit.

    Args:
        db: Session de base de donnees async
        patient_data: Donnees du patient a creer

    Returns:
        Vue normalisee du patient cree

    Raises:
        DuplicateIdentifierError: Identifiant deja present dans l'un des deux espaces
    """
    with tracer.start_as_current_span("create_patient") as span:
        await ensure_identifier_available(db, patient_data.identifier, instance="/api/v1/patients")

        patient = Patient(
            auth_id=patient_data.auth_id,
            first_name=patient_data.first_name,
            last_name=patient_data.last_name,
            identifier=patient_data.identifier,
            email=patient_data.email,
            phone=patient_data.phone,
            birth_date=patient_data.birth_date,
            sex=patient_data.sex,
        )
        db.add(patient)
        await _commit_or_conflict(db)
        await db.refresh(patient)

        span.set_attribute("patient.id", str(patient.id))
        span.add_event("Patient cree avec succes")
        return normalize(PatientKind.REGISTERED, patient)


async def create_unregistered_patient(
    db: AsyncSession,
    organization_id: UUID,
    patient_data: UnregisteredPatientCreate,
    created_by: str | None = None,
) -> tuple[UnregisteredPatient, NormalizedPatientView]:
    """
    Cree un patient de passage rattache a l'organisation de l'appelant.

    Returns:
        La ligne creee et sa vue normalisee

    Raises:
        DuplicateIdentifierError: Identification deja presente dans l'un des deux espaces
    """
    with tracer.start_as_current_span("create_unregistered_patient") as span:
        span.set_attribute("patient.organization_id", str(organization_id))
        await ensure_identifier_available(
            db, patient_data.identification, instance="/api/v1/unregistered-patients"
        )

        patient = UnregisteredPatient(
            organization_id=organization_id,
            first_name=patient_data.first_name,
            last_name=patient_data.last_name,
            phone=patient_data.phone,
            identification=patient_data.identification,
            birth_date=patient_data.birth_date,
            sex=patient_data.sex,
            email=patient_data.email,
            address=patient_data.address,
            allergies=patient_data.allergies,
            chronic_conditions=patient_data.chronic_conditions,
            current_medication=patient_data.current_medication,
            motive=patient_data.motive,
            created_by=created_by,
        )
        db.add(patient)
        await _commit_or_conflict(db)
        await db.refresh(patient)

        span.set_attribute("patient.id", str(patient.id))
        span.add_event("Patient de passage cree")
        return patient, normalize(PatientKind.UNREGISTERED, patient)


async def get_by_emergency_token(db: AsyncSession, token: str) -> NormalizedPatientView | None:
    """
    Lookup public par jeton de QR code d'urgence.

    Seul point d'acces sans credential ni scope tenant: le jeton doit
    correspondre et l'acces d'urgence etre active par le patient.
    """
    with tracer.start_as_current_span("get_patient_by_emergency_token") as span:
        result = await db.execute(
            select(Patient).where(
                Patient.emergency_qr_token == token,
                Patient.emergency_qr_enabled.is_(True),
            )
        )
        patient = result.scalar_one_or_none()
        span.set_attribute("patient.found", patient is not None)
        if patient is None:
            return None
        return normalize(PatientKind.REGISTERED, patient)
