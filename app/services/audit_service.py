"""Journal d'audit append-only des actions privilégiées.

`record` est best-effort-once: l'écriture se fait dans sa propre session,
après le commit métier, avec un délai borné. Un échec ou un dépassement de
délai est journalisé et compté, jamais propagé à l'appelant. Il n'y a pas
de clé d'idempotence: une requête rejouée produit une seconde entrée.
"""

import asyncio
import logging
from uuid import UUID

from fastapi import Request
from opentelemetry import metrics, trace
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.models.audit_entry import AuditEntry
from app.schemas.audit import AuditActor, AuditEntryCreate, AuditLogFilters
from app.schemas.identity import AppUserIdentity, Identity, RoleUserIdentity

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

meter = metrics.get_meter("core-clinic-access.audit")

audit_write_failures_counter = meter.create_counter(
    name="audit_write_failures_total",
    description="Audit entries abandoned after an error or timeout",
    unit="1",
)


def actor_from_identity(identity: Identity) -> AuditActor:
    """Copie l'identité de l'auteur dans l'entrée (snapshot des noms)."""
    if isinstance(identity, RoleUserIdentity):
        session = identity.session
        return AuditActor(
            role_id=session.role_id,
            role_user_id=session.role_user_id,
            first_name=session.first_name,
            last_name=session.last_name,
            identifier=session.identifier,
        )
    return AuditActor(
        user_id=identity.user_id,
        first_name=identity.first_name,
        last_name=identity.last_name,
        identifier=identity.email,
    )


def request_metadata(request: Request | None) -> dict[str, str | None]:
    """Adresse IP et user agent de la requête, pour les champs d'audit."""
    if request is None:
        return {"ip_address": None, "user_agent": None}
    forwarded = request.headers.get("x-forwarded-for")
    ip_address = forwarded.split(",")[0].strip() if forwarded else None
    if ip_address is None and request.client is not None:
        ip_address = request.client.host
    return {"ip_address": ip_address, "user_agent": request.headers.get("user-agent")}


def build_entry(
    identity: Identity,
    organization_id: UUID,
    action_type,
    module,
    entity_type: str | None = None,
    entity_id: str | None = None,
    action_details: dict | None = None,
    request: Request | None = None,
    role_id: UUID | None = None,
) -> AuditEntryCreate:
    """
    Prépare une entrée pour une action réalisée par `identity`.

    `role_id` permet de rattacher l'action d'un User applicatif au rôle
    personnalisé qu'elle concerne (édition d'un rôle par exemple).
    """
    actor = actor_from_identity(identity)
    if role_id is not None and isinstance(identity, AppUserIdentity):
        actor = actor.model_copy(update={"role_id": role_id})
    return AuditEntryCreate(
        organization_id=organization_id,
        actor=actor,
        action_type=action_type,
        module=module,
        entity_type=entity_type,
        entity_id=entity_id,
        action_details=action_details or {},
        **request_metadata(request),
    )


async def _write(entry: AuditEntryCreate, session_factory: async_sessionmaker[AsyncSession]) -> None:
    async with session_factory() as session:
        session.add(
            AuditEntry(
                organization_id=entry.organization_id,
                role_id=entry.actor.role_id,
                role_user_id=entry.actor.role_user_id,
                user_id=entry.actor.user_id,
                user_first_name=entry.actor.first_name,
                user_last_name=entry.actor.last_name,
                user_identifier=entry.actor.identifier,
                action_type=entry.action_type.value,
                module=entry.module.value,
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                action_details=entry.action_details,
                ip_address=entry.ip_address,
                user_agent=entry.user_agent,
            )
        )
        await session.commit()


async def record(
    entry: AuditEntryCreate,
    session_factory: async_sessionmaker[AsyncSession],
    timeout: float | None = None,
) -> bool:
    """
    Ajoute une entrée au journal.

    Returns:
        True si l'entrée est écrite, False si elle a été abandonnée
        (erreur ou délai dépassé). Ne lève jamais.
    """
    timeout = timeout if timeout is not None else settings.AUDIT_WRITE_TIMEOUT_SECONDS
    with tracer.start_as_current_span("record_audit_entry") as span:
        span.set_attribute("audit.organization_id", str(entry.organization_id))
        span.set_attribute("audit.action_type", entry.action_type.value)
        span.set_attribute("audit.module", entry.module.value)
        try:
            await asyncio.wait_for(_write(entry, session_factory), timeout=timeout)
        except TimeoutError:
            logger.error(
                f"Audit write abandoned after {timeout}s: organization={entry.organization_id} "
                f"action={entry.action_type.value} module={entry.module.value} "
                f"entity={entry.entity_type}:{entry.entity_id}"
            )
            audit_write_failures_counter.add(1, {"reason": "timeout"})
            span.set_attribute("audit.recorded", False)
            return False
        except Exception:
            logger.exception(
                f"Audit write failed: organization={entry.organization_id} "
                f"action={entry.action_type.value} module={entry.module.value} "
                f"entity={entry.entity_type}:{entry.entity_id}"
            )
            audit_write_failures_counter.add(1, {"reason": "error"})
            span.set_attribute("audit.recorded", False)
            return False

        span.set_attribute("audit.recorded", True)
        return True


async def list_entries(
    db: AsyncSession,
    organization_id: UUID,
    filters: AuditLogFilters,
) -> list[AuditEntry]:
    """Entrées de l'organisation, les plus récentes d'abord, limitées à AUDIT_LOG_MAX_LIMIT."""
    with tracer.start_as_current_span("list_audit_entries") as span:
        span.set_attribute("audit.organization_id", str(organization_id))
        query = select(AuditEntry).where(AuditEntry.organization_id == organization_id)
        if filters.role_id is not None:
            query = query.where(AuditEntry.role_id == filters.role_id)
        if filters.role_user_id is not None:
            query = query.where(AuditEntry.role_user_id == filters.role_user_id)
        if filters.module is not None:
            query = query.where(AuditEntry.module == filters.module.value)
        if filters.action_type is not None:
            query = query.where(AuditEntry.action_type == filters.action_type.value)

        limit = min(filters.limit, settings.AUDIT_LOG_MAX_LIMIT)
        query = query.order_by(AuditEntry.created_at.desc()).limit(limit)
        result = await db.execute(query)
        entries = list(result.scalars().all())
        span.set_attribute("audit.result_count", len(entries))
        return entries


async def record_action(
    session_factory: async_sessionmaker[AsyncSession],
    identity: Identity,
    organization_id: UUID,
    action_type,
    module,
    entity_type: str | None = None,
    entity_id: str | None = None,
    action_details: dict | None = None,
    request: Request | None = None,
    role_id: UUID | None = None,
) -> bool:
    """Raccourci des handlers: `build_entry` puis `record`, après le commit métier."""
    entry = build_entry(
        identity=identity,
        organization_id=organization_id,
        action_type=action_type,
        module=module,
        entity_type=entity_type,
        entity_id=entity_id,
        action_details=action_details,
        request=request,
        role_id=role_id,
    )
    return await record(entry, session_factory)
