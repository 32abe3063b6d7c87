"""Endpoints d'administration des role users d'un rôle."""

from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.v1.endpoints.roles import get_scoped_role, require_clinic_owner
from app.core.database import get_session, get_session_factory
from app.core.exceptions import RoleNotFoundError, RoleUserNotFoundError
from app.core.identity_provider import IdentityProvider, get_identity_provider
from app.models.role import Role
from app.models.role_user import RoleUser
from app.schemas.enums import ActionType, Module
from app.schemas.identity import AppUserIdentity
from app.schemas.role import RoleUserCreate, RoleUserResponse, RoleUserUpdate
from app.services import audit_service, role_user_service

router = APIRouter()


async def _get_role_user(db: AsyncSession, role: Role, user_id: UUID) -> RoleUser:
    role_user = await role_user_service.get_role_user(db, user_id)
    if role_user is None or role_user.role_id != role.id:
        raise RoleUserNotFoundError(instance=f"/api/v1/roles/{role.id}/users/{user_id}")
    return role_user


@router.get(
    "/{role_id}/users",
    response_model=list[RoleUserResponse],
    summary="Lister les role users d'un rôle",
)
async def list_role_users(
    role_id: UUID,
    db: AsyncSession = Depends(get_session),
    identity: AppUserIdentity = Depends(require_clinic_owner),
) -> list[RoleUserResponse]:
    role = await get_scoped_role(db, identity, role_id)
    role_users = await role_user_service.list_role_users(db, role.id)
    return [RoleUserResponse.model_validate(ru, from_attributes=True) for ru in role_users]


@router.post(
    "/{role_id}/users",
    response_model=RoleUserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Créer un role user",
    description="Crée le membre du personnel et son compte Keycloak (attribut isRoleUser)",
)
async def create_role_user(
    role_id: UUID,
    user_data: RoleUserCreate,
    request: Request,
    db: AsyncSession = Depends(get_session),
    provider: IdentityProvider = Depends(get_identity_provider),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    identity: AppUserIdentity = Depends(require_clinic_owner),
) -> RoleUserResponse:
    role = await get_scoped_role(db, identity, role_id)
    if not role.is_active:
        raise RoleNotFoundError(role_id=str(role.id), instance=f"/api/v1/roles/{role.id}/users")

    role_user = await role_user_service.create_role_user(
        db, provider, role, user_data, created_by=str(identity.user_id)
    )
    await audit_service.record_action(
        session_factory,
        identity,
        role.organization_id,
        ActionType.CREATE,
        Module.ROLES,
        entity_type="role_user",
        entity_id=str(role_user.id),
        action_details={"identifier": role_user.identifier, "role_name": role.role_name},
        request=request,
        role_id=role.id,
    )
    return RoleUserResponse.model_validate(role_user, from_attributes=True)


@router.patch(
    "/{role_id}/users/{user_id}",
    response_model=RoleUserResponse,
    summary="Modifier un role user",
)
async def update_role_user(
    role_id: UUID,
    user_id: UUID,
    user_data: RoleUserUpdate,
    request: Request,
    db: AsyncSession = Depends(get_session),
    provider: IdentityProvider = Depends(get_identity_provider),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    identity: AppUserIdentity = Depends(require_clinic_owner),
) -> RoleUserResponse:
    role = await get_scoped_role(db, identity, role_id)
    role_user = await _get_role_user(db, role, user_id)
    role_user, changes = await role_user_service.update_role_user(
        db, provider, role_user, user_data
    )
    if changes:
        await audit_service.record_action(
            session_factory,
            identity,
            role.organization_id,
            ActionType.UPDATE,
            Module.ROLES,
            entity_type="role_user",
            entity_id=str(role_user.id),
            action_details=changes,
            request=request,
            role_id=role.id,
        )
    return RoleUserResponse.model_validate(role_user, from_attributes=True)


@router.delete(
    "/{role_id}/users/{user_id}",
    response_model=RoleUserResponse,
    summary="Désactiver un role user",
    description="Soft delete: le role user et son compte Keycloak sont désactivés",
)
async def delete_role_user(
    role_id: UUID,
    user_id: UUID,
    request: Request,
    db: AsyncSession = Depends(get_session),
    provider: IdentityProvider = Depends(get_identity_provider),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    identity: AppUserIdentity = Depends(require_clinic_owner),
) -> RoleUserResponse:
    role = await get_scoped_role(db, identity, role_id)
    role_user = await _get_role_user(db, role, user_id)
    role_user = await role_user_service.deactivate_role_user(db, provider, role_user)
    await audit_service.record_action(
        session_factory,
        identity,
        role.organization_id,
        ActionType.DELETE,
        Module.ROLES,
        entity_type="role_user",
        entity_id=str(role_user.id),
        action_details={"identifier": role_user.identifier},
        request=request,
        role_id=role.id,
    )
    return RoleUserResponse.model_validate(role_user, from_attributes=True)
