"""Registre des rôles personnalisés et de leurs matrices de permissions.

- Unicité du nom: exacte (sensible à la casse) parmi les rôles actifs d'une
  organisation, vérifiée à la création et à la mise à jour.
- Remplacement des permissions: suppression puis insertion de l'ensemble
  fourni, dans une seule transaction. Dernier écrivain gagnant: aucune
  détection d'éditions concurrentes.
- Désactivation: soft delete du rôle et de tous ses role users, puis
  désactivation de leurs comptes chez le fournisseur d'identité.
- Mise à jour: une seule transaction, annulée en entier sur erreur.
- Lignes héritées au module inconnu: ignorées à la lecture (quarantaine) et
  signalées dans les logs.
"""

import logging
from typing import Any
from uuid import UUID

from opentelemetry import trace
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DuplicateRoleNameError
from app.core.identity_provider import IdentityProvider
from app.models.role import Role, RolePermission
from app.models.role_user import RoleUser
from app.schemas.access import Capabilities, ModulePermissionInput, PermissionEntry
from app.schemas.enums import Module
from app.schemas.role import RoleCreate, RoleUpdate

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def to_permission_entry(row: RolePermission) -> PermissionEntry | None:
    """Convertit une ligne en PermissionEntry, ou None si le module est inconnu."""
    try:
        module = Module(row.module)
    except ValueError:
        logger.warning(
            f"Quarantined permission row {row.id} of role {row.role_id}: unknown module '{row.module}'"
        )
        return None
    return PermissionEntry(
        id=row.id,
        module=module,
        permissions=Capabilities(
            view=row.can_view,
            create=row.can_create,
            update=row.can_update,
            delete=row.can_delete,
        ),
    )


def _to_rows(role_id: UUID, modules: list[ModulePermissionInput]) -> list[RolePermission]:
    return [
        RolePermission(
            role_id=role_id,
            module=item.module.value,
            can_view=item.permissions.view,
            can_create=item.permissions.create,
            can_update=item.permissions.update,
            can_delete=item.permissions.delete,
        )
        for item in modules
    ]


async def list_permissions(db: AsyncSession, role_id: UUID) -> list[PermissionEntry]:
    """Permissions courantes d'un rôle (lecture fraîche, jamais mise en cache)."""
    result = await db.execute(
        select(RolePermission)
        .where(RolePermission.role_id == role_id)
        .order_by(RolePermission.module)
    )
    entries = [to_permission_entry(row) for row in result.scalars().all()]
    return [entry for entry in entries if entry is not None]


async def _replace_rows(
    db: AsyncSession, role_id: UUID, modules: list[ModulePermissionInput]
) -> None:
    await db.execute(delete(RolePermission).where(RolePermission.role_id == role_id))
    db.add_all(_to_rows(role_id, modules))


async def replace_permissions(
    db: AsyncSession,
    role_id: UUID,
    modules: list[ModulePermissionInput],
) -> list[PermissionEntry]:
    """
    Remplace intégralement les permissions d'un rôle.

    Suppression de toutes les lignes du rôle puis insertion de l'ensemble
    fourni, commit unique. En cas d'erreur, rollback: l'ancien ensemble reste.
    """
    with tracer.start_as_current_span("replace_permissions") as span:
        span.set_attribute("role.id", str(role_id))
        span.set_attribute("role.module_count", len(modules))
        try:
            await _replace_rows(db, role_id, modules)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        span.add_event("Permissions remplacées")
        return await list_permissions(db, role_id)


async def get_role(db: AsyncSession, role_id: UUID) -> Role | None:
    result = await db.execute(select(Role).where(Role.id == role_id))
    return result.scalar_one_or_none()


async def list_roles(
    db: AsyncSession,
    organization_id: UUID,
    include_inactive: bool = False,
) -> list[Role]:
    query = select(Role).where(Role.organization_id == organization_id)
    if not include_inactive:
        query = query.where(Role.is_active.is_(True))
    result = await db.execute(query.order_by(Role.created_at.desc()))
    return list(result.scalars().all())


async def _find_active_role_by_name(
    db: AsyncSession,
    organization_id: UUID,
    role_name: str,
    exclude_role_id: UUID | None = None,
) -> Role | None:
    query = select(Role).where(
        Role.organization_id == organization_id,
        Role.role_name == role_name,
        Role.is_active.is_(True),
    )
    if exclude_role_id is not None:
        query = query.where(Role.id != exclude_role_id)
    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none()


async def create_role(
    db: AsyncSession,
    organization_id: UUID,
    role_data: RoleCreate,
    created_by: str | None = None,
) -> Role:
    """
    Crée un rôle et ses permissions initiales.

    Raises:
        DuplicateRoleNameError: Si un rôle actif porte déjà ce nom dans l'organisation
    """
    with tracer.start_as_current_span("create_role") as span:
        span.set_attribute("role.organization_id", str(organization_id))

        existing = await _find_active_role_by_name(db, organization_id, role_data.role_name)
        if existing is not None:
            raise DuplicateRoleNameError(
                role_name=role_data.role_name,
                existing_role_id=str(existing.id),
                instance="/api/v1/roles",
            )

        role = Role(
            organization_id=organization_id,
            role_name=role_data.role_name,
            role_description=role_data.role_description,
            is_active=True,
            created_by=created_by,
        )
        db.add(role)
        await db.flush()
        db.add_all(_to_rows(role.id, role_data.permissions))
        await db.commit()
        await db.refresh(role)

        span.set_attribute("role.id", str(role.id))
        span.add_event("Rôle créé")
        logger.info(f"Role {role.id} '{role.role_name}' created in organization {organization_id}")
        return role


async def _deactivate_rows(db: AsyncSession, role: Role) -> list[RoleUser]:
    """Passe le rôle et ses role users actifs à inactif, sans commit."""
    result = await db.execute(
        select(RoleUser).where(RoleUser.role_id == role.id, RoleUser.is_active.is_(True))
    )
    role_users = list(result.unique().scalars().all())
    role.is_active = False
    for role_user in role_users:
        role_user.is_active = False
    return role_users


async def _disable_accounts(provider: IdentityProvider, role_users: list[RoleUser]) -> None:
    """
    Répercute une désactivation en cascade sur les comptes du fournisseur, après commit.

    Un échec est journalisé sans être propagé: le login refuse déjà un role
    user inactif en base, avant toute vérification du mot de passe.
    """
    for role_user in role_users:
        if not role_user.auth_id:
            continue
        try:
            await provider.set_account_enabled(role_user.auth_id, False)
        except Exception as e:
            logger.error(
                f"Cannot disable identity provider account of role user {role_user.id}: {e}"
            )


async def deactivate_role(db: AsyncSession, provider: IdentityProvider, role: Role) -> int:
    """
    Soft delete d'un rôle et désactivation de tous ses role users.

    Les comptes du fournisseur d'identité sont désactivés une fois la
    transaction validée, comme pour la désactivation d'un role user seul.

    Returns:
        Nombre de role users désactivés
    """
    with tracer.start_as_current_span("deactivate_role") as span:
        span.set_attribute("role.id", str(role.id))
        try:
            role_users = await _deactivate_rows(db, role)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        await db.refresh(role)
        await _disable_accounts(provider, role_users)

        deactivated = len(role_users)
        span.set_attribute("role.deactivated_role_users", deactivated)
        logger.info(f"Role {role.id} deactivated with {deactivated} role user(s)")
        return deactivated


async def update_role(
    db: AsyncSession,
    provider: IdentityProvider,
    role: Role,
    role_data: RoleUpdate,
) -> tuple[Role, dict[str, Any]]:
    """
    Met à jour un rôle dans une seule transaction.

    `permissions`, si fourni, remplace intégralement la matrice. Passer
    is_active à False applique la même cascade que `deactivate_role`. Toute
    erreur annule l'ensemble de la modification.

    Returns:
        Le rôle et le dictionnaire des changements (pour l'audit)

    Raises:
        DuplicateRoleNameError: Si le nouveau nom est déjà pris par un autre rôle actif
    """
    with tracer.start_as_current_span("update_role") as span:
        span.set_attribute("role.id", str(role.id))
        changes: dict[str, Any] = {}
        deactivated: list[RoleUser] = []

        try:
            if role_data.role_name is not None and role_data.role_name != role.role_name:
                existing = await _find_active_role_by_name(
                    db, role.organization_id, role_data.role_name, exclude_role_id=role.id
                )
                if existing is not None:
                    raise DuplicateRoleNameError(
                        role_name=role_data.role_name,
                        existing_role_id=str(existing.id),
                        instance=f"/api/v1/roles/{role.id}",
                    )
                changes["role_name"] = {"from": role.role_name, "to": role_data.role_name}
                role.role_name = role_data.role_name

            if (
                "role_description" in role_data.model_fields_set
                and role_data.role_description != role.role_description
            ):
                changes["role_description"] = {
                    "from": role.role_description,
                    "to": role_data.role_description,
                }
                role.role_description = role_data.role_description

            if role_data.is_active is True and not role.is_active:
                existing = await _find_active_role_by_name(
                    db, role.organization_id, role.role_name, exclude_role_id=role.id
                )
                if existing is not None:
                    raise DuplicateRoleNameError(
                        role_name=role.role_name,
                        existing_role_id=str(existing.id),
                        instance=f"/api/v1/roles/{role.id}",
                    )
                changes["is_active"] = {"from": False, "to": True}
                role.is_active = True

            if role_data.permissions is not None:
                await _replace_rows(db, role.id, role_data.permissions)
                changes["permissions"] = [
                    {"module": item.module.value, **item.permissions.model_dump()}
                    for item in role_data.permissions
                ]

            if role_data.is_active is False and role.is_active:
                deactivated = await _deactivate_rows(db, role)
                changes["is_active"] = {"from": True, "to": False}
                changes["deactivated_role_users"] = len(deactivated)

            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await db.refresh(role)
        await _disable_accounts(provider, deactivated)

        span.set_attribute("role.changed_fields", ",".join(changes))
        return role, changes
