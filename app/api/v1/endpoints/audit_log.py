"""Endpoints du journal d'audit.

L'organisation d'une entrée vient toujours de l'identité de l'appelant,
jamais du corps de la requête.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.database import get_session, get_session_factory
from app.core.guards import Denied
from app.core.security import get_caller_identity, require_permission
from app.core.tenancy import require_organization
from app.schemas.audit import (
    AuditEntryResponse,
    AuditLogFilters,
    AuditRecordRequest,
    AuditRecordResponse,
)
from app.schemas.enums import ActionType, Module, PermissionAction
from app.schemas.identity import Identity
from app.services import audit_service

router = APIRouter()


@router.post(
    "",
    response_model=AuditRecordResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Consigner une action",
    description="Best effort: `recorded` vaut false si l'écriture a échoué ou expiré",
)
async def record_entry(
    payload: AuditRecordRequest,
    request: Request,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    identity: Identity = Depends(get_caller_identity),
) -> AuditRecordResponse:
    scope = require_organization(identity)
    if isinstance(scope, Denied):
        raise scope.error

    recorded = await audit_service.record_action(
        session_factory,
        identity,
        scope.value,
        payload.action_type,
        payload.module,
        entity_type=payload.entity_type,
        entity_id=payload.entity_id,
        action_details=payload.action_details,
        request=request,
    )
    return AuditRecordResponse(success=True, recorded=recorded)


@router.get(
    "",
    response_model=list[AuditEntryResponse],
    summary="Consulter le journal d'audit",
    description="Entrées de l'organisation de l'appelant, les plus récentes d'abord",
)
async def list_entries(
    role_id: UUID | None = Query(None),
    role_user_id: UUID | None = Query(None),
    module: Module | None = Query(None),
    action_type: ActionType | None = Query(None),
    limit: int = Query(settings.AUDIT_LOG_DEFAULT_LIMIT, ge=1),
    db: AsyncSession = Depends(get_session),
    identity: Identity = Depends(require_permission(Module.ROLES, PermissionAction.VIEW)),
) -> list[AuditEntryResponse]:
    scope = require_organization(identity)
    if isinstance(scope, Denied):
        raise scope.error

    filters = AuditLogFilters(
        role_id=role_id,
        role_user_id=role_user_id,
        module=module,
        action_type=action_type,
        limit=limit,
    )
    entries = await audit_service.list_entries(db, scope.value, filters)
    return [AuditEntryResponse.model_validate(entry, from_attributes=True) for entry in entries]
