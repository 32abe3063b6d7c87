from fastapi import APIRouter

from app.api.v1 import health
from app.api.v1.endpoints import (
    audit_log,
    clinical_records,
    identity,
    patients,
    role_user_session,
    role_users,
    roles,
)
from app.schemas import COMMON_RESPONSES

# Router principal avec réponses RFC 9457 par défaut
router = APIRouter(responses=COMMON_RESPONSES)

router.include_router(health.router, tags=["health"])
router.include_router(identity.router, prefix="/identity", tags=["identity"])
router.include_router(
    role_user_session.router, prefix="/role-users/session", tags=["role-user-session"]
)
router.include_router(roles.router, prefix="/roles", tags=["roles"])
router.include_router(role_users.router, prefix="/roles", tags=["role-users"])
router.include_router(audit_log.router, prefix="/audit-log", tags=["audit-log"])
router.include_router(patients.router, prefix="/patients", tags=["patients"])
router.include_router(
    patients.unregistered_router, prefix="/unregistered-patients", tags=["patients"]
)
router.include_router(patients.emergency_router, prefix="/emergency", tags=["emergency"])
router.include_router(clinical_records.tasks_router, prefix="/tasks", tags=["tasks"])
router.include_router(
    clinical_records.consultations_router, prefix="/consultations", tags=["consultations"]
)
