"""Résolution d'identité patient entre les deux espaces (inscrit / de passage).

Le sondage des deux tables n'a lieu qu'à la frontière d'entrée (`classify`,
`resolve_for_write`). Une fois classé, un id circule sous forme de PatientRef
et n'est plus jamais re-sondé.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DuplicateIdentifierError, NotFoundError, UnknownPatientError
from app.models.patient import Patient, UnregisteredPatient
from app.schemas.clinical import PatientLinkInput
from app.schemas.enums import PatientKind
from app.schemas.patient import (
    NormalizedPatientView,
    PatientRef,
    RegisteredPatientRef,
    UnregisteredPatientRef,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(frozen=True)
class ClassifiedPatient:
    kind: PatientKind
    patient: Patient | UnregisteredPatient

    @property
    def ref(self) -> PatientRef:
        if self.kind == PatientKind.REGISTERED:
            return RegisteredPatientRef(id=self.patient.id)
        return UnregisteredPatientRef(id=self.patient.id)


async def _get_registered(db: AsyncSession, patient_id: UUID) -> Patient | None:
    result = await db.execute(select(Patient).where(Patient.id == patient_id))
    return result.scalar_one_or_none()


async def _get_unregistered(db: AsyncSession, patient_id: UUID) -> UnregisteredPatient | None:
    result = await db.execute(
        select(UnregisteredPatient).where(UnregisteredPatient.id == patient_id)
    )
    return result.scalar_one_or_none()


async def classify(db: AsyncSession, raw_id: UUID) -> ClassifiedPatient:
    """
    Classe un id patient nu: table des inscrits d'abord, puis celle des patients de passage.

    Raises:
        NotFoundError: Id absent des deux tables
    """
    with tracer.start_as_current_span("classify_patient") as span:
        span.set_attribute("patient.id", str(raw_id))

        patient = await _get_registered(db, raw_id)
        if patient is not None:
            span.set_attribute("patient.kind", PatientKind.REGISTERED.value)
            return ClassifiedPatient(kind=PatientKind.REGISTERED, patient=patient)

        unregistered = await _get_unregistered(db, raw_id)
        if unregistered is not None:
            span.set_attribute("patient.kind", PatientKind.UNREGISTERED.value)
            return ClassifiedPatient(kind=PatientKind.UNREGISTERED, patient=unregistered)

        span.set_attribute("patient.kind", "not_found")
        raise NotFoundError(
            detail=f"Patient {raw_id} not found",
            resource_type="Patient",
            resource_id=str(raw_id),
        )


def normalize(kind: PatientKind, patient: Patient | UnregisteredPatient) -> NormalizedPatientView:
    """Vue d'identité de forme stable, quelle que soit la table d'origine."""
    if kind == PatientKind.REGISTERED:
        identifier = patient.identifier
    else:
        identifier = patient.identification
    return NormalizedPatientView(
        id=patient.id,
        kind=kind,
        first_name=patient.first_name,
        last_name=patient.last_name,
        identifier=identifier,
        email=patient.email,
        phone=patient.phone,
        birth_date=patient.birth_date,
        sex=patient.sex,
    )


def is_visible_to(classified: ClassifiedPatient, organization_id: UUID | None) -> bool:
    """Un patient inscrit est visible de toute organisation, un patient de passage de la sienne seulement."""
    if classified.kind == PatientKind.REGISTERED:
        return True
    return organization_id is not None and classified.patient.organization_id == organization_id


async def resolve_for_write(
    db: AsyncSession,
    link: PatientLinkInput,
    organization_id: UUID,
) -> ClassifiedPatient:
    """
    Résout la référence patient d'un payload de création en PatientRef vérifié.

    - `patient` (référence typée): vérifiée dans sa propre table, sans sondage
    - `patient_id` (id nu): classé une seule fois
    - `unregistered_patient_id`: vérifié dans la table des patients de passage

    Un patient de passage d'une autre organisation est traité comme inconnu.

    Raises:
        UnknownPatientError: Référence non résolue
    """
    with tracer.start_as_current_span("resolve_patient_for_write") as span:
        if link.patient is not None:
            raw_id = link.patient.id
            if isinstance(link.patient, RegisteredPatientRef):
                found = await _get_registered(db, raw_id)
                kind = PatientKind.REGISTERED
            else:
                found = await _get_unregistered(db, raw_id)
                kind = PatientKind.UNREGISTERED
            classified = ClassifiedPatient(kind=kind, patient=found) if found else None
        elif link.unregistered_patient_id is not None:
            raw_id = link.unregistered_patient_id
            found = await _get_unregistered(db, raw_id)
            classified = (
                ClassifiedPatient(kind=PatientKind.UNREGISTERED, patient=found) if found else None
            )
        else:
            raw_id = link.patient_id
            try:
                classified = await classify(db, raw_id)
            except NotFoundError:
                classified = None

        span.set_attribute("patient.id", str(raw_id))
        if classified is None or not is_visible_to(classified, organization_id):
            logger.warning(f"Unresolvable patient reference {raw_id} for organization {organization_id}")
            raise UnknownPatientError(patient_id=str(raw_id))

        span.set_attribute("patient.kind", classified.kind.value)
        return classified


async def find_by_identifier(
    db: AsyncSession, identifier: str
) -> ClassifiedPatient | None:
    """
    Patient portant cet identifiant national, dans l'un ou l'autre espace.

    Comparaison exacte et sensible à la casse, après suppression des espaces
    en bordure: "v-22222222" et "V-22222222" sont deux identifiants distincts.
    """
    identifier = identifier.strip()
    result = await db.execute(select(Patient).where(Patient.identifier == identifier).limit(1))
    patient = result.scalar_one_or_none()
    if patient is not None:
        return ClassifiedPatient(kind=PatientKind.REGISTERED, patient=patient)

    result = await db.execute(
        select(UnregisteredPatient).where(UnregisteredPatient.identification == identifier).limit(1)
    )
    unregistered = result.scalar_one_or_none()
    if unregistered is not None:
        return ClassifiedPatient(kind=PatientKind.UNREGISTERED, patient=unregistered)
    return None


async def ensure_identifier_available(
    db: AsyncSession, identifier: str | None, instance: str | None = None
) -> None:
    """
    Unicité globale de l'identifiant national sur les deux espaces patients.

    Raises:
        DuplicateIdentifierError: Porte l'id et l'espace du patient existant
    """
    if not identifier:
        return
    existing = await find_by_identifier(db, identifier)
    if existing is not None:
        logger.info(
            f"Identifier collision with {existing.kind.value} patient {existing.patient.id}"
        )
        raise DuplicateIdentifierError(
            identifier=identifier,
            existing_patient_id=str(existing.patient.id),
            existing_patient_kind=existing.kind.value,
            instance=instance,
        )
