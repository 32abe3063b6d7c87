"""Passerelle d'identité et facade AccessGuard.

- IdentityGateway (`extract_credential`, `resolve_identity`): bearer token
  (header, puis cookie de repli) vérifié par le fournisseur d'identité, puis
  associé au User local par son auth_id.
- AccessGuard (`authorize`): point d'entrée unique des routes. L'exigence est
  soit un ensemble de rôles applicatifs, soit un couple (module, action)
  vérifié contre les permissions du descripteur de session role user.

Les fonctions de garde retournent `Granted | Denied`; seules les dépendances
FastAPI (`require_roles`, `require_permission`, `get_current_identity`)
lèvent l'erreur portée par un refus.
"""

import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_session
from app.core.exceptions import ForbiddenError, ProfileNotFoundError, UnauthorizedError
from app.core.guards import Denied, Granted, deny
from app.core.identity_provider import (
    CredentialRejectedError,
    IdentityProvider,
    get_identity_provider,
)
from app.core.session_cookie import read_session
from app.core.tenancy import require_any_role
from app.models.user import User
from app.schemas.access import find_capabilities
from app.schemas.enums import CLINIC_OWNER_ROLES, Module, PermissionAction, UserRole
from app.schemas.identity import AppUserIdentity, Identity, RoleUserIdentity

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Documente le schéma Bearer dans OpenAPI sans rejeter les requêtes sans header
security_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class RoleRequirement:
    """L'appelant doit être un User applicatif portant l'un de ces rôles."""

    roles: frozenset[UserRole]


@dataclass(frozen=True)
class PermissionRequirement:
    """
    L'appelant doit disposer de `action` sur `module`.

    Un role user est jugé sur les permissions de son descripteur de session.
    Un User applicatif passe s'il porte l'un des `owner_roles`.
    """

    module: Module
    action: PermissionAction
    owner_roles: frozenset[UserRole] = CLINIC_OWNER_ROLES


Requirement = RoleRequirement | PermissionRequirement


def _bearer_from_header(request: Request) -> str | None:
    authorization = request.headers.get("Authorization")
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def extract_credential(request: Request) -> str | None:
    """
    Extrait le bearer token d'un User applicatif.

    Priorité:
    1. Header Authorization: Bearer <token>
    2. Cookie de repli (AUTH_COOKIE_NAME)
    """
    token = _bearer_from_header(request)
    if token:
        logger.debug("Token extracted from Authorization header")
        return token

    token = request.cookies.get(settings.AUTH_COOKIE_NAME)
    if token:
        logger.debug("Token extracted from cookie")
        return token

    return None


async def resolve_identity(
    db: AsyncSession,
    provider: IdentityProvider,
    credential: str | None,
    profile_missing_status: int = 403,
) -> Granted[AppUserIdentity] | Denied:
    """
    Résout un credential en User applicatif.

    - pas de credential, ou credential refusé par le fournisseur: Unauthenticated (401)
    - credential valide mais aucun User local: ProfileNotFound (statut choisi par l'appelant)
    - User désactivé: Forbidden (403)

    Lecture seule.
    """
    with tracer.start_as_current_span("resolve_identity") as span:
        if not credential:
            span.set_attribute("auth.outcome", "no_credential")
            return deny(
                UnauthorizedError(detail="Authentication required"),
                reason="unauthenticated",
            )

        try:
            subject = await provider.verify_token(credential)
        except CredentialRejectedError as e:
            logger.warning(f"Token verification failed: {e}")
            span.set_attribute("auth.outcome", "invalid_token")
            return deny(UnauthorizedError(detail="Invalid token"), reason="invalid_token")

        span.set_attribute("auth.subject_id", subject.subject_id)
        result = await db.execute(select(User).where(User.auth_id == subject.subject_id))
        user = result.scalar_one_or_none()

        if user is None:
            logger.warning(f"No local profile for authenticated subject {subject.subject_id}")
            span.set_attribute("auth.outcome", "profile_not_found")
            return deny(
                ProfileNotFoundError(
                    subject_id=subject.subject_id, status_code=profile_missing_status
                ),
                reason="profile_not_found",
            )

        if not user.is_active:
            span.set_attribute("auth.outcome", "user_inactive")
            return deny(ForbiddenError(detail="User account is deactivated"), reason="user_inactive")

        try:
            role = UserRole(user.role)
        except ValueError:
            logger.error(f"User {user.id} has unsupported role '{user.role}'")
            return deny(ForbiddenError(detail="Unsupported user role"), reason="unsupported_role")

        span.set_attribute("auth.outcome", "resolved")
        span.set_attribute("auth.user_role", role.value)
        return Granted(
            AppUserIdentity(
                user_id=user.id,
                auth_id=user.auth_id,
                email=user.email,
                first_name=user.first_name,
                last_name=user.last_name,
                role=role,
                organization_id=user.organization_id,
            )
        )


def _check_session_permission(
    request: Request, requirement: PermissionRequirement
) -> Granted[Identity] | Denied | None:
    """Juge un role user sur son snapshot de session. None si aucune session valide."""
    descriptor = read_session(request)
    if descriptor is None:
        return None

    capabilities = find_capabilities(descriptor.permissions, requirement.module)
    if capabilities is None or not capabilities.allows(requirement.action):
        logger.warning(
            f"Role user {descriptor.role_user_id} lacks "
            f"{requirement.module.value}.{requirement.action.value}"
        )
        return deny(
            ForbiddenError(
                detail=(
                    f"Missing permission '{requirement.action.value}' "
                    f"on module '{requirement.module.value}'"
                )
            ),
            reason="missing_permission",
        )
    return Granted(RoleUserIdentity(session=descriptor))


async def authorize(
    request: Request,
    requirement: Requirement,
    db: AsyncSession,
    provider: IdentityProvider,
) -> Granted[Identity] | Denied:
    """
    Point d'entrée unique du contrôle d'accès.

    Ordre de résolution:
    1. Header Authorization présent: piste User applicatif
    2. Cookie de session role user valide: piste role user (exigences de permission uniquement)
    3. Cookie bearer de repli: piste User applicatif
    """
    with tracer.start_as_current_span("authorize") as span:
        if isinstance(requirement, RoleRequirement):
            span.set_attribute("auth.required_roles", ",".join(r.value for r in requirement.roles))
        else:
            span.set_attribute(
                "auth.required_permission",
                f"{requirement.module.value}.{requirement.action.value}",
            )

        use_app_user_track = _bearer_from_header(request) is not None
        if not use_app_user_track and isinstance(requirement, PermissionRequirement):
            session_result = _check_session_permission(request, requirement)
            if session_result is not None:
                span.set_attribute("auth.track", "role_user")
                span.set_attribute("auth.granted", isinstance(session_result, Granted))
                return session_result

        span.set_attribute("auth.track", "user")
        identity_result = await resolve_identity(db, provider, extract_credential(request))
        if isinstance(identity_result, Denied):
            span.set_attribute("auth.granted", False)
            return identity_result

        allowed_roles = (
            requirement.roles
            if isinstance(requirement, RoleRequirement)
            else requirement.owner_roles
        )
        role_result = require_any_role(identity_result.value, allowed_roles)
        span.set_attribute("auth.granted", isinstance(role_result, Granted))
        return role_result


def require_roles(*roles: UserRole):
    """
    Dependency factory: User applicatif portant au moins un des rôles.

    Example:
        @router.get("/roles", dependencies=[Depends(require_roles(UserRole.DOCTOR))])
    """
    requirement = RoleRequirement(roles=frozenset(roles))

    async def role_checker(
        request: Request,
        _credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security_scheme)],
        db: AsyncSession = Depends(get_session),
        provider: IdentityProvider = Depends(get_identity_provider),
    ) -> AppUserIdentity:
        result = await authorize(request, requirement, db, provider)
        if isinstance(result, Denied):
            raise result.error
        return result.value

    return role_checker


def require_permission(
    module: Module,
    action: PermissionAction,
    owner_roles: frozenset[UserRole] = CLINIC_OWNER_ROLES,
):
    """
    Dependency factory: permission (module, action) d'un role user, ou rôle propriétaire.

    Example:
        identity: Identity = Depends(require_permission(Module.TASKS, PermissionAction.CREATE))
    """
    requirement = PermissionRequirement(module=module, action=action, owner_roles=owner_roles)

    async def permission_checker(
        request: Request,
        _credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security_scheme)],
        db: AsyncSession = Depends(get_session),
        provider: IdentityProvider = Depends(get_identity_provider),
    ) -> Identity:
        result = await authorize(request, requirement, db, provider)
        if isinstance(result, Denied):
            raise result.error
        return result.value

    return permission_checker


async def get_current_identity(
    request: Request,
    _credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security_scheme)],
    db: AsyncSession = Depends(get_session),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> AppUserIdentity:
    """User applicatif courant, quel que soit son rôle."""
    result = await resolve_identity(db, provider, extract_credential(request))
    if isinstance(result, Denied):
        raise result.error
    return result.value


async def get_caller_identity(
    request: Request,
    _credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security_scheme)],
    db: AsyncSession = Depends(get_session),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> Identity:
    """
    Identité courante, User applicatif ou role user, sans exigence de permission.

    Même ordre de résolution que `authorize`: le header Authorization prime
    sur le cookie de session.
    """
    if _bearer_from_header(request) is None:
        descriptor = read_session(request)
        if descriptor is not None:
            return RoleUserIdentity(session=descriptor)

    result = await resolve_identity(db, provider, extract_credential(request))
    if isinstance(result, Denied):
        raise result.error
    return result.value
