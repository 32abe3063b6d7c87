"""Endpoints de session des role users.

- POST   /role-users/session          login, pose le cookie signé
- GET    /role-users/session          verify, toujours 200
- DELETE /role-users/session          logout, toujours 200
- POST   /role-users/session/refresh  réémet le cookie depuis l'état courant
"""

import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import get_session, get_session_factory
from app.core.exceptions import UnauthorizedError
from app.core.identity_provider import IdentityProvider, get_identity_provider
from app.core.session_cookie import clear_session_cookie, read_session, set_session_cookie
from app.schemas.session import (
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    SessionUser,
    VerifyResponse,
)
from app.services import role_user_session_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=LoginResponse,
    response_model_by_alias=True,
    summary="Login role user",
    description="Authentifie un role user par identifiant (cédule) ou email et mot de passe",
)
async def login(
    login_data: LoginRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_session),
    provider: IdentityProvider = Depends(get_identity_provider),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> LoginResponse:
    descriptor = await role_user_session_service.login(
        db=db,
        provider=provider,
        session_factory=session_factory,
        login_data=login_data,
        request=request,
    )
    set_session_cookie(response, descriptor)
    return LoginResponse(success=True, user=SessionUser.from_descriptor(descriptor))


@router.get(
    "",
    response_model=VerifyResponse,
    response_model_by_alias=True,
    summary="Vérifier la session",
    description="Relit la session courante en base. Toujours 200, authentifié ou non.",
)
async def verify(
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> VerifyResponse:
    descriptor = await role_user_session_service.verify(db, read_session(request))
    if descriptor is None:
        return VerifyResponse(authenticated=False)
    return VerifyResponse(authenticated=True, user=SessionUser.from_descriptor(descriptor))


@router.delete(
    "",
    response_model=LogoutResponse,
    summary="Logout role user",
    description="Supprime le cookie de session. Idempotent, toujours 200.",
)
async def logout(
    request: Request,
    response: Response,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> LogoutResponse:
    await role_user_session_service.record_logout(session_factory, read_session(request), request)
    clear_session_cookie(response)
    return LogoutResponse(success=True)


@router.post(
    "/refresh",
    response_model=VerifyResponse,
    response_model_by_alias=True,
    summary="Rafraîchir la session",
    description="Réémet le cookie avec les permissions courantes du rôle",
)
async def refresh(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_session),
) -> VerifyResponse:
    descriptor = await role_user_session_service.refresh(db, read_session(request))
    if descriptor is None:
        raise UnauthorizedError(detail="No valid role user session")
    set_session_cookie(response, descriptor)
    return VerifyResponse(authenticated=True, user=SessionUser.from_descriptor(descriptor))
