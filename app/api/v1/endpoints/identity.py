"""Endpoint de résolution d'identité du User applicatif courant."""

from fastapi import APIRouter, Depends

from app.core.security import get_current_identity
from app.schemas.identity import AppUserIdentity, IdentityResponse

router = APIRouter()


@router.get(
    "/me",
    response_model=IdentityResponse,
    summary="Identité courante",
    description="Résout le bearer token courant en User local (401 sans credential, 403 sans profil local)",
)
async def get_me(identity: AppUserIdentity = Depends(get_current_identity)) -> IdentityResponse:
    return IdentityResponse(
        user_id=identity.user_id,
        email=identity.email,
        first_name=identity.first_name,
        last_name=identity.last_name,
        role=identity.role,
        organization_id=identity.organization_id,
    )
