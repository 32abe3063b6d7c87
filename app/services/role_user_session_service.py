"""Sessions des role users: login, verify, refresh, logout.

Deux chemins de lecture des permissions coexistent volontairement:
- `login` matérialise un SessionDescriptor (snapshot) porté par le cookie
  signé; AccessGuard juge les requêtes sur ce snapshot.
- `verify` et `refresh` relisent le role user, son rôle et les permissions
  courantes en base.

Une révocation de permission n'est donc visible par une session déjà
ouverte qu'après un nouveau login ou un refresh.
"""

import logging
from datetime import UTC, datetime
from uuid import UUID

from fastapi import Request
from opentelemetry import metrics, trace
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import (
    DisabledAccountError,
    InvalidCredentialsError,
    InvalidLoginRequestError,
    RoleNotFoundError,
    RoleUserNotFoundError,
)
from app.core.identity_provider import CredentialRejectedError, IdentityProvider
from app.models.role_user import RoleUser
from app.schemas.enums import ActionType, Module
from app.schemas.identity import RoleUserIdentity
from app.schemas.session import LoginRequest, SessionDescriptor
from app.services import audit_service
from app.services.permission_registry import list_permissions

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

meter = metrics.get_meter("core-clinic-access.sessions")

login_attempts_counter = meter.create_counter(
    name="role_user_login_attempts_total",
    description="Role user login attempts by outcome",
    unit="1",
)


def _login_failed(outcome: str) -> None:
    login_attempts_counter.add(1, {"outcome": outcome})


async def _find_candidates(
    db: AsyncSession, identifier: str | None, email: str | None
) -> list[RoleUser]:
    """
    Role users visés par le login, actifs d'abord.

    L'email, s'il est fourni, est prioritaire sur l'identifiant. L'email est
    unique parmi les role users; la cédule ne l'est que dans une organisation,
    plusieurs cliniques peuvent donc avoir un membre du personnel avec la même.
    """
    if email:
        query = select(RoleUser).where(func.lower(RoleUser.email) == email.strip().lower())
    else:
        query = select(RoleUser).where(RoleUser.identifier == identifier.strip())
    query = query.order_by(RoleUser.is_active.desc(), RoleUser.created_at.desc())
    result = await db.execute(query)
    return list(result.unique().scalars().all())


async def _match_credentials(
    provider: IdentityProvider, candidates: list[RoleUser], password: str
) -> RoleUser | None:
    """Premier candidat dont le compte accepte le mot de passe et correspond au sujet lié."""
    for candidate in candidates:
        try:
            subject = await provider.verify_password(candidate.email, password)
        except CredentialRejectedError:
            continue

        if candidate.auth_id and candidate.auth_id != subject.subject_id:
            logger.warning(
                f"Role user {candidate.id} bound to {candidate.auth_id} "
                f"but credentials verified for {subject.subject_id}"
            )
            continue
        return candidate
    return None


async def build_descriptor(
    db: AsyncSession,
    role_user: RoleUser,
    issued_at: datetime | None = None,
) -> SessionDescriptor | None:
    """
    Construit un descripteur à partir de l'état courant en base.

    Returns:
        None si le rôle est absent, inactif ou d'une autre organisation
    """
    role = role_user.role
    if role is None or not role.is_active or role.organization_id != role_user.organization_id:
        return None

    permissions = await list_permissions(db, role.id)
    return SessionDescriptor(
        role_user_id=role_user.id,
        role_id=role.id,
        organization_id=role_user.organization_id,
        first_name=role_user.first_name,
        last_name=role_user.last_name,
        identifier=role_user.identifier,
        email=role_user.email,
        role_name=role.role_name,
        role_description=role.role_description,
        permissions=permissions,
        issued_at=issued_at or datetime.now(UTC),
    )


async def login(
    db: AsyncSession,
    provider: IdentityProvider,
    session_factory: async_sessionmaker[AsyncSession],
    login_data: LoginRequest,
    request: Request | None = None,
) -> SessionDescriptor:
    """
    Authentifie un role user et matérialise son descripteur de session.

    Ordre des contrôles:
    1. Champs requis présents (400)
    2. Role user trouvé par email ou identifiant (404)
    3. Au moins un compte actif (403), avant toute vérification du mot de passe
    4. Mot de passe vérifié par le fournisseur d'identité (401), sur chaque
       compte actif portant la cédule jusqu'au premier accepté
    5. Rôle actif dans la même organisation (404)

    Effets: met à jour last_access_at et écrit une entrée d'audit `login`.

    Raises:
        InvalidLoginRequestError, RoleUserNotFoundError, DisabledAccountError,
        InvalidCredentialsError, RoleNotFoundError
    """
    with tracer.start_as_current_span("role_user_login") as span:
        identifier = (login_data.identifier or "").strip() or None
        email = (login_data.email or "").strip() or None

        if not login_data.password:
            _login_failed("bad_request")
            raise InvalidLoginRequestError(detail="Password is required")
        if identifier is None and email is None:
            _login_failed("bad_request")
            raise InvalidLoginRequestError(detail="Identifier or email is required")

        span.set_attribute("login.method", "email" if email else "identifier")
        candidates = await _find_candidates(db, identifier, email)
        if not candidates:
            _login_failed("not_found")
            raise RoleUserNotFoundError()

        active = [candidate for candidate in candidates if candidate.is_active]
        if not active:
            logger.info(f"Login refused for disabled role user {candidates[0].id}")
            _login_failed("disabled")
            raise DisabledAccountError(role_user_id=str(candidates[0].id))

        span.set_attribute("login.candidate_count", len(active))
        role_user = await _match_credentials(provider, active, login_data.password)
        if role_user is None:
            _login_failed("invalid_credentials")
            raise InvalidCredentialsError()

        span.set_attribute("role_user.id", str(role_user.id))
        descriptor = await build_descriptor(db, role_user)
        if descriptor is None:
            _login_failed("role_not_found")
            raise RoleNotFoundError(role_id=str(role_user.role_id))

        role_user.last_access_at = descriptor.issued_at
        await db.commit()

        login_attempts_counter.add(1, {"outcome": "success"})
        span.set_attribute("login.permission_count", len(descriptor.permissions))

        entry = audit_service.build_entry(
            identity=RoleUserIdentity(session=descriptor),
            organization_id=descriptor.organization_id,
            action_type=ActionType.LOGIN,
            module=Module.ROLES,
            entity_type="login",
            entity_id=str(role_user.id),
            action_details={"method": "email" if email else "identifier"},
            request=request,
        )
        await audit_service.record(entry, session_factory)

        logger.info(f"Role user {role_user.id} logged in with role {descriptor.role_id}")
        return descriptor


async def _reload(db: AsyncSession, role_user_id: UUID) -> RoleUser | None:
    result = await db.execute(select(RoleUser).where(RoleUser.id == role_user_id))
    return result.unique().scalar_one_or_none()


async def verify(
    db: AsyncSession, descriptor: SessionDescriptor | None
) -> SessionDescriptor | None:
    """
    Relit l'état courant d'une session.

    Returns:
        Un descripteur aux permissions courantes, ou None (anonyme) si le
        cookie est absent, le role user introuvable ou désactivé, ou son
        rôle inactif. Ne lève jamais d'erreur d'authentification.
    """
    with tracer.start_as_current_span("role_user_verify") as span:
        if descriptor is None:
            span.set_attribute("session.authenticated", False)
            return None

        role_user = await _reload(db, descriptor.role_user_id)
        if role_user is None or not role_user.is_active:
            span.set_attribute("session.authenticated", False)
            return None

        fresh = await build_descriptor(db, role_user, issued_at=descriptor.issued_at)
        span.set_attribute("session.authenticated", fresh is not None)
        return fresh


async def refresh(
    db: AsyncSession, descriptor: SessionDescriptor | None
) -> SessionDescriptor | None:
    """Comme `verify`, mais produit un nouveau snapshot à réémettre dans le cookie."""
    with tracer.start_as_current_span("role_user_refresh"):
        current = await verify(db, descriptor)
        if current is None:
            return None
        return current.model_copy(update={"issued_at": datetime.now(UTC)})


async def record_logout(
    session_factory: async_sessionmaker[AsyncSession],
    descriptor: SessionDescriptor | None,
    request: Request | None = None,
) -> None:
    """Consigne la déconnexion d'une session valide. Sans session, ne fait rien."""
    if descriptor is None:
        return
    entry = audit_service.build_entry(
        identity=RoleUserIdentity(session=descriptor),
        organization_id=descriptor.organization_id,
        action_type=ActionType.LOGOUT,
        module=Module.ROLES,
        entity_type="logout",
        entity_id=str(descriptor.role_user_id),
        request=request,
    )
    await audit_service.record(entry, session_factory)
