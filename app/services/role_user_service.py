"""Administration des role users (personnel interne lié à un rôle personnalisé)."""

import logging
from typing import Any
from uuid import UUID

from opentelemetry import trace
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ConflictError, ValidationError
from app.core.identity_provider import IdentityProvider
from app.models.role import Role
from app.models.role_user import RoleUser
from app.schemas.role import RoleUserCreate, RoleUserUpdate

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


async def list_role_users(db: AsyncSession, role_id: UUID) -> list[RoleUser]:
    result = await db.execute(
        select(RoleUser).where(RoleUser.role_id == role_id).order_by(RoleUser.created_at.desc())
    )
    return list(result.scalars().all())


async def get_role_user(db: AsyncSession, role_user_id: UUID) -> RoleUser | None:
    result = await db.execute(select(RoleUser).where(RoleUser.id == role_user_id))
    return result.scalar_one_or_none()


async def _identifier_taken(
    db: AsyncSession,
    organization_id: UUID,
    identifier: str,
    exclude_role_user_id: UUID | None = None,
) -> RoleUser | None:
    query = select(RoleUser).where(
        RoleUser.organization_id == organization_id,
        RoleUser.identifier == identifier,
    )
    if exclude_role_user_id is not None:
        query = query.where(RoleUser.id != exclude_role_user_id)
    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none()


async def _discard_account(provider: IdentityProvider, subject_id: str) -> None:
    """Supprime un compte créé pour un role user dont l'insertion a échoué."""
    try:
        await provider.delete_account(subject_id)
    except Exception as e:
        logger.error(f"Orphaned identity provider account {subject_id} after failed insert: {e}")


async def _commit_with_account_state(
    db: AsyncSession,
    provider: IdentityProvider,
    auth_id: str | None,
    enabled: bool | None,
) -> None:
    """
    Valide la transaction en gardant le compte du fournisseur aligné sur is_active.

    Les changements partent en base (flush) avant l'appel au fournisseur. Un
    refus du fournisseur annule la transaction; un échec du commit rétablit
    l'état précédent du compte.
    """
    mirrored = bool(auth_id) and enabled is not None
    try:
        await db.flush()
        if mirrored:
            await provider.set_account_enabled(auth_id, enabled)
    except Exception:
        await db.rollback()
        raise

    try:
        await db.commit()
    except Exception:
        await db.rollback()
        if mirrored:
            try:
                await provider.set_account_enabled(auth_id, not enabled)
            except Exception as e:
                logger.error(f"Cannot restore identity provider account {auth_id}: {e}")
        raise


async def create_role_user(
    db: AsyncSession,
    provider: IdentityProvider,
    role: Role,
    user_data: RoleUserCreate,
    created_by: str | None = None,
) -> RoleUser:
    """
    Crée un role user et son compte chez le fournisseur d'identité.

    L'organisation du role user est toujours celle de son rôle.

    Raises:
        ValidationError: Mot de passe trop court
        ConflictError: Identifiant déjà utilisé dans l'organisation, ou email déjà lié à un role user
    """
    with tracer.start_as_current_span("create_role_user") as span:
        span.set_attribute("role.id", str(role.id))

        if len(user_data.password) < settings.ROLE_USER_MIN_PASSWORD_LENGTH:
            raise ValidationError(
                detail=(
                    f"Password must be at least {settings.ROLE_USER_MIN_PASSWORD_LENGTH} characters"
                )
            )

        existing = await _identifier_taken(db, role.organization_id, user_data.identifier)
        if existing is not None:
            raise ConflictError(
                detail=f"A staff member with identifier '{user_data.identifier}' already exists",
                conflicting_resource=f"/api/v1/roles/{existing.role_id}/users/{existing.id}",
            )

        email = user_data.email.lower()
        result = await db.execute(
            select(RoleUser).where(func.lower(RoleUser.email) == email).limit(1)
        )
        bound = result.scalar_one_or_none()
        if bound is not None:
            raise ConflictError(
                detail=f"Email '{email}' is already bound to a staff account",
                conflicting_resource=f"/api/v1/roles/{bound.role_id}/users/{bound.id}",
            )

        subject_id = await provider.create_account(
            email=email,
            password=user_data.password,
            first_name=user_data.first_name,
            last_name=user_data.last_name,
            attributes={
                "isRoleUser": "true",
                "organizationId": str(role.organization_id),
                "roleId": str(role.id),
            },
        )

        role_user = RoleUser(
            organization_id=role.organization_id,
            role_id=role.id,
            auth_id=subject_id,
            first_name=user_data.first_name,
            last_name=user_data.last_name,
            identifier=user_data.identifier,
            email=email,
            phone=user_data.phone,
            is_active=True,
            created_by=created_by,
        )
        db.add(role_user)
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.error(f"Role user insert rejected by constraints: {e}")
            await _discard_account(provider, subject_id)
            raise ConflictError(
                detail="Staff member already exists", conflicting_resource=None
            ) from e
        except Exception:
            await db.rollback()
            await _discard_account(provider, subject_id)
            raise
        await db.refresh(role_user)

        span.set_attribute("role_user.id", str(role_user.id))
        logger.info(f"Role user {role_user.id} created for role {role.id}")
        return role_user


async def update_role_user(
    db: AsyncSession,
    provider: IdentityProvider,
    role_user: RoleUser,
    user_data: RoleUserUpdate,
) -> tuple[RoleUser, dict[str, Any]]:
    """
    Met à jour un role user. Le changement de is_active est répercuté sur le compte du fournisseur.

    Returns:
        Le role user et le dictionnaire des changements (pour l'audit)
    """
    with tracer.start_as_current_span("update_role_user") as span:
        span.set_attribute("role_user.id", str(role_user.id))
        changes: dict[str, Any] = {}

        if user_data.identifier is not None and user_data.identifier != role_user.identifier:
            existing = await _identifier_taken(
                db, role_user.organization_id, user_data.identifier, role_user.id
            )
            if existing is not None:
                raise ConflictError(
                    detail=f"A staff member with identifier '{user_data.identifier}' already exists",
                    conflicting_resource=f"/api/v1/roles/{existing.role_id}/users/{existing.id}",
                )

        for field in ("first_name", "last_name", "identifier", "phone"):
            value = getattr(user_data, field)
            if value is not None and value != getattr(role_user, field):
                changes[field] = {"from": getattr(role_user, field), "to": value}
                setattr(role_user, field, value)

        enabled = None
        if user_data.is_active is not None and user_data.is_active != role_user.is_active:
            changes["is_active"] = {"from": role_user.is_active, "to": user_data.is_active}
            role_user.is_active = user_data.is_active
            enabled = user_data.is_active

        await _commit_with_account_state(db, provider, role_user.auth_id, enabled)
        await db.refresh(role_user)
        return role_user, changes


async def deactivate_role_user(
    db: AsyncSession,
    provider: IdentityProvider,
    role_user: RoleUser,
) -> RoleUser:
    """Soft delete: désactive le role user et son compte chez le fournisseur."""
    with tracer.start_as_current_span("deactivate_role_user") as span:
        span.set_attribute("role_user.id", str(role_user.id))
        auth_id = role_user.auth_id
        role_user.is_active = False
        await _commit_with_account_state(db, provider, auth_id, False)
        await db.refresh(role_user)
        logger.info(f"Role user {role_user.id} deactivated")
        return role_user
