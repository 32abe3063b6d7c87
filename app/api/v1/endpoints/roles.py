"""Endpoints du registre des rôles personnalisés.

Réservés aux rôles propriétaires d'une organisation (MEDICO, CLINICA, ADMIN)
et toujours scopés à l'organisation de l'appelant.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import get_session, get_session_factory
from app.core.exceptions import RoleNotFoundError
from app.core.guards import Denied
from app.core.identity_provider import IdentityProvider, get_identity_provider
from app.core.security import require_roles
from app.core.tenancy import enforce, require_organization
from app.models.role import Role
from app.schemas.access import PermissionEntry, PermissionReplaceRequest
from app.schemas.enums import CLINIC_OWNER_ROLES, ActionType, Module
from app.schemas.identity import AppUserIdentity
from app.schemas.role import RoleCreate, RoleDeactivationResponse, RoleResponse, RoleUpdate
from app.services import audit_service, permission_registry

logger = logging.getLogger(__name__)

router = APIRouter()

require_clinic_owner = require_roles(*CLINIC_OWNER_ROLES)


def caller_organization(identity: AppUserIdentity) -> UUID:
    result = require_organization(identity)
    if isinstance(result, Denied):
        raise result.error
    return result.value


async def get_scoped_role(db: AsyncSession, identity: AppUserIdentity, role_id: UUID) -> Role:
    """Charge un rôle et vérifie qu'il appartient à l'organisation de l'appelant."""
    role = await permission_registry.get_role(db, role_id)
    if role is None:
        raise RoleNotFoundError(role_id=str(role_id), instance=f"/api/v1/roles/{role_id}")
    scope = enforce(identity, role.organization_id)
    if isinstance(scope, Denied):
        raise scope.error
    return role


async def _to_response(db: AsyncSession, role: Role) -> RoleResponse:
    return RoleResponse(
        id=role.id,
        organization_id=role.organization_id,
        role_name=role.role_name,
        role_description=role.role_description,
        is_active=role.is_active,
        created_at=role.created_at,
        updated_at=role.updated_at,
        permissions=await permission_registry.list_permissions(db, role.id),
    )


@router.get(
    "",
    response_model=list[RoleResponse],
    summary="Lister les rôles de l'organisation",
)
async def list_roles(
    include_inactive: bool = Query(False, description="Inclure les rôles désactivés"),
    db: AsyncSession = Depends(get_session),
    identity: AppUserIdentity = Depends(require_clinic_owner),
) -> list[RoleResponse]:
    organization_id = caller_organization(identity)
    roles = await permission_registry.list_roles(db, organization_id, include_inactive)
    return [await _to_response(db, role) for role in roles]


@router.post(
    "",
    response_model=RoleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Créer un rôle",
    description="Crée un rôle personnalisé et sa matrice de permissions initiale",
)
async def create_role(
    role_data: RoleCreate,
    request: Request,
    db: AsyncSession = Depends(get_session),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    identity: AppUserIdentity = Depends(require_clinic_owner),
) -> RoleResponse:
    organization_id = caller_organization(identity)
    role = await permission_registry.create_role(
        db, organization_id, role_data, created_by=str(identity.user_id)
    )
    await audit_service.record_action(
        session_factory,
        identity,
        organization_id,
        ActionType.CREATE,
        Module.ROLES,
        entity_type="role",
        entity_id=str(role.id),
        action_details={
            "role_name": role.role_name,
            "modules": [item.module.value for item in role_data.permissions],
        },
        request=request,
        role_id=role.id,
    )
    return await _to_response(db, role)


@router.get("/{role_id}", response_model=RoleResponse, summary="Détail d'un rôle")
async def get_role(
    role_id: UUID,
    db: AsyncSession = Depends(get_session),
    identity: AppUserIdentity = Depends(require_clinic_owner),
) -> RoleResponse:
    role = await get_scoped_role(db, identity, role_id)
    return await _to_response(db, role)


@router.patch(
    "/{role_id}",
    response_model=RoleResponse,
    summary="Modifier un rôle",
    description="Nom, description, activation et remplacement optionnel des permissions",
)
async def update_role(
    role_id: UUID,
    role_data: RoleUpdate,
    request: Request,
    db: AsyncSession = Depends(get_session),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    provider: IdentityProvider = Depends(get_identity_provider),
    identity: AppUserIdentity = Depends(require_clinic_owner),
) -> RoleResponse:
    role = await get_scoped_role(db, identity, role_id)
    role, changes = await permission_registry.update_role(db, provider, role, role_data)
    if changes:
        await audit_service.record_action(
            session_factory,
            identity,
            role.organization_id,
            ActionType.UPDATE,
            Module.ROLES,
            entity_type="role",
            entity_id=str(role.id),
            action_details=changes,
            request=request,
            role_id=role.id,
        )
    return await _to_response(db, role)


@router.delete(
    "/{role_id}",
    response_model=RoleDeactivationResponse,
    summary="Désactiver un rôle",
    description="Soft delete du rôle et désactivation de tous ses role users",
)
async def delete_role(
    role_id: UUID,
    request: Request,
    db: AsyncSession = Depends(get_session),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    provider: IdentityProvider = Depends(get_identity_provider),
    identity: AppUserIdentity = Depends(require_clinic_owner),
) -> RoleDeactivationResponse:
    role = await get_scoped_role(db, identity, role_id)
    deactivated = await permission_registry.deactivate_role(db, provider, role)
    await audit_service.record_action(
        session_factory,
        identity,
        role.organization_id,
        ActionType.DELETE,
        Module.ROLES,
        entity_type="role",
        entity_id=str(role.id),
        action_details={"role_name": role.role_name, "deactivated_role_users": deactivated},
        request=request,
        role_id=role.id,
    )
    return RoleDeactivationResponse(role_id=role.id, deactivated_role_users=deactivated)


@router.get(
    "/{role_id}/permissions",
    response_model=list[PermissionEntry],
    summary="Permissions d'un rôle",
)
async def get_permissions(
    role_id: UUID,
    db: AsyncSession = Depends(get_session),
    identity: AppUserIdentity = Depends(require_clinic_owner),
) -> list[PermissionEntry]:
    role = await get_scoped_role(db, identity, role_id)
    return await permission_registry.list_permissions(db, role.id)


@router.put(
    "/{role_id}/permissions",
    response_model=list[PermissionEntry],
    summary="Remplacer les permissions d'un rôle",
    description=(
        "Remplacement intégral: les modules absents du corps n'ont plus aucune capacité. "
        "Les sessions déjà ouvertes conservent leur snapshot jusqu'au prochain login ou refresh."
    ),
)
async def replace_permissions(
    role_id: UUID,
    payload: PermissionReplaceRequest,
    request: Request,
    db: AsyncSession = Depends(get_session),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    identity: AppUserIdentity = Depends(require_clinic_owner),
) -> list[PermissionEntry]:
    role = await get_scoped_role(db, identity, role_id)
    permissions = await permission_registry.replace_permissions(db, role.id, payload.modules)
    await audit_service.record_action(
        session_factory,
        identity,
        role.organization_id,
        ActionType.UPDATE,
        Module.ROLES,
        entity_type="role_permissions",
        entity_id=str(role.id),
        action_details={
            "permissions": [
                {"module": item.module.value, **item.permissions.model_dump()}
                for item in payload.modules
            ]
        },
        request=request,
        role_id=role.id,
    )
    return permissions
