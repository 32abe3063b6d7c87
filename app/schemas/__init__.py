"""Schemas Pydantic pour validation des donnees."""

from fastapi_errors_rfc9457 import (
    COMMON_RESPONSES,
    ConflictErrorResponse,
    ProblemDetailResponse,
    ValidationErrorResponse,
)

from app.schemas.access import Capabilities, ModulePermissionInput, PermissionEntry
from app.schemas.enums import ActionType, Module, PatientKind, PermissionAction, UserRole
from app.schemas.patient import NormalizedPatientView, PatientRef
from app.schemas.session import SessionDescriptor

__all__ = [
    "COMMON_RESPONSES",
    "ActionType",
    "Capabilities",
    "ConflictErrorResponse",
    "Module",
    "ModulePermissionInput",
    "NormalizedPatientView",
    "PatientKind",
    "PatientRef",
    "PermissionAction",
    "PermissionEntry",
    "ProblemDetailResponse",
    "SessionDescriptor",
    "UserRole",
    "ValidationErrorResponse",
]
