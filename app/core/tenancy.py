"""Contrôle du scope tenant (organisation).

Fonctions pures, sans I/O. Le handler fournit l'organization_id porté par
l'enregistrement accédé, pas seulement celui de la session, pour qu'une
identité ne puisse pas agir sur la ligne d'une autre organisation en
devinant son id.
"""

import logging
from collections.abc import Iterable
from uuid import UUID

from app.core.exceptions import ForbiddenError
from app.core.guards import Denied, Granted, deny
from app.schemas.enums import UserRole
from app.schemas.identity import AppUserIdentity, Identity

logger = logging.getLogger(__name__)


def organization_of(identity: Identity) -> UUID | None:
    return identity.organization_id


def require_organization(identity: Identity) -> Granted[UUID] | Denied:
    """Les opérations scopées exigent une identité rattachée à une organisation."""
    organization_id = organization_of(identity)
    if organization_id is None:
        return deny(
            ForbiddenError(detail="This operation requires an organization membership"),
            reason="no_organization",
        )
    return Granted(organization_id)


def enforce(identity: Identity, target_organization_id: UUID | None) -> Granted[Identity] | Denied:
    """
    Accepte l'accès si l'organisation de l'enregistrement est celle de l'identité.

    Un enregistrement sans organisation, ou une identité sans organisation
    (praticien indépendant), ne satisfait jamais le contrôle.
    """
    caller_organization_id = organization_of(identity)
    if (
        target_organization_id is None
        or caller_organization_id is None
        or caller_organization_id != target_organization_id
    ):
        logger.warning(
            f"Tenant scope violation: {identity.kind} of organization {caller_organization_id} "
            f"targeted organization {target_organization_id}"
        )
        return deny(
            ForbiddenError(detail="Resource belongs to another organization"),
            reason="tenant_mismatch",
        )
    return Granted(identity)


def require_any_role(
    identity: Identity, allowed_roles: Iterable[UserRole]
) -> Granted[AppUserIdentity] | Denied:
    """Vérifie que l'identité est un User applicatif portant l'un des rôles autorisés."""
    allowed = frozenset(allowed_roles)
    if not isinstance(identity, AppUserIdentity):
        return deny(
            ForbiddenError(detail="This operation requires an application user account"),
            reason="role_user_not_allowed",
        )
    if identity.role not in allowed:
        logger.warning(
            f"Access denied for user {identity.user_id}: role {identity.role.value} "
            f"not in {sorted(role.value for role in allowed)}"
        )
        return deny(
            ForbiddenError(
                detail=f"Access denied. Required roles: {', '.join(sorted(r.value for r in allowed))}"
            ),
            reason="missing_role",
        )
    return Granted(identity)


def enforce_scoped(
    identity: Identity,
    target_organization_id: UUID | None,
    allowed_roles: Iterable[UserRole] | None = None,
) -> Granted[Identity] | Denied:
    """Variante restreinte par rôle: `require_any_role` puis `enforce`."""
    if allowed_roles is not None:
        role_check = require_any_role(identity, allowed_roles)
        if isinstance(role_check, Denied):
            return role_check
    return enforce(identity, target_organization_id)
