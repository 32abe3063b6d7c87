"""Schémas du journal d'audit."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.enums import ActionType, Module


class AuditActor(BaseModel):
    """Auteur d'une action, copié dans l'entrée au moment de l'écriture."""

    role_id: UUID | None = None
    role_user_id: UUID | None = None
    user_id: UUID | None = None
    first_name: str | None = None
    last_name: str | None = None
    identifier: str | None = None


class AuditEntryCreate(BaseModel):
    """Entrée à consigner. L'organisation est toujours fournie par le code appelant."""

    organization_id: UUID
    actor: AuditActor
    action_type: ActionType
    module: Module
    entity_type: str | None = None
    entity_id: str | None = None
    action_details: dict[str, Any] = Field(default_factory=dict)
    ip_address: str | None = None
    user_agent: str | None = None


class AuditRecordRequest(BaseModel):
    """Corps de POST /audit-log: l'organisation et l'acteur viennent de l'identité."""

    action_type: ActionType
    module: Module
    entity_type: str | None = Field(None, max_length=100)
    entity_id: str | None = Field(None, max_length=100)
    action_details: dict[str, Any] = Field(default_factory=dict)


class AuditRecordResponse(BaseModel):
    success: bool
    recorded: bool = Field(..., description="False si l'écriture a échoué ou expiré (best effort)")


class AuditEntryResponse(BaseModel):
    id: UUID
    organization_id: UUID
    role_id: UUID | None = None
    role_user_id: UUID | None = None
    user_id: UUID | None = None
    user_first_name: str | None = None
    user_last_name: str | None = None
    user_identifier: str | None = None
    action_type: str
    module: str
    entity_type: str | None = None
    entity_id: str | None = None
    action_details: dict[str, Any] = Field(default_factory=dict)
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: datetime | None = None


class AuditLogFilters(BaseModel):
    role_id: UUID | None = None
    role_user_id: UUID | None = None
    module: Module | None = None
    action_type: ActionType | None = None
    limit: int = Field(100, ge=1)
