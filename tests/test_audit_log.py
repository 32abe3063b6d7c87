"""Tests du journal d'audit (écriture best effort, lecture scopée)."""

import asyncio
from contextlib import asynccontextmanager

import pytest
from sqlalchemy import func, select

from app.core.config import settings
from app.models import AuditEntry
from app.schemas.audit import AuditActor, AuditEntryCreate, AuditLogFilters
from app.schemas.enums import ActionType, Module, UserRole
from app.schemas.identity import AppUserIdentity
from app.services import audit_service

AUDIT_URL = "/api/v1/audit-log"


def make_entry(organization_id, module: Module = Module.TASKS, **overrides) -> AuditEntryCreate:
    data = {
        "organization_id": organization_id,
        "actor": AuditActor(first_name="Carla", last_name="Mendoza"),
        "action_type": ActionType.CREATE,
        "module": module,
        "entity_type": "task",
        "entity_id": "task-1",
    }
    data.update(overrides)
    return AuditEntryCreate(**data)


async def count_entries(session_factory) -> int:
    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(AuditEntry))
        return result.scalar_one()


# ============================================================================
# record
# ============================================================================


class TestRecord:
    """Tests pour audit_service.record."""

    @pytest.mark.asyncio
    async def test_record_writes_entry(self, session_factory, seed):
        """Test écriture d'une entrée dans sa propre session."""
        recorded = await audit_service.record(make_entry(seed.clinic.id), session_factory)

        assert recorded is True
        assert await count_entries(session_factory) == 1

    @pytest.mark.asyncio
    async def test_replayed_entry_is_duplicated(self, session_factory, seed):
        """Test absence de clé d'idempotence: deux écritures, deux entrées."""
        entry = make_entry(seed.clinic.id)

        await audit_service.record(entry, session_factory)
        await audit_service.record(entry, session_factory)

        assert await count_entries(session_factory) == 2

    @pytest.mark.asyncio
    async def test_failure_is_not_raised(self, seed):
        """Test qu'une erreur d'écriture retourne False sans lever."""

        def broken_factory():
            raise RuntimeError("database unavailable")

        recorded = await audit_service.record(make_entry(seed.clinic.id), broken_factory)

        assert recorded is False

    @pytest.mark.asyncio
    async def test_timeout_is_not_raised(self, seed):
        """Test qu'une écriture bloquée est abandonnée après le délai."""

        @asynccontextmanager
        async def hanging_factory():
            await asyncio.Event().wait()
            yield None

        recorded = await audit_service.record(
            make_entry(seed.clinic.id), hanging_factory, timeout=0.05
        )

        assert recorded is False


class TestBuildEntry:
    """Tests pour build_entry et actor_from_identity."""

    def test_app_user_actor_with_role_reference(self, seed):
        """Test qu'une action d'un User peut être rattachée au rôle concerné."""
        identity = AppUserIdentity(
            user_id=seed.owner.id,
            auth_id="kc-owner",
            email="owner@central.example",
            first_name="Carla",
            last_name="Mendoza",
            role=UserRole.CLINIC,
            organization_id=seed.clinic.id,
        )

        entry = audit_service.build_entry(
            identity, seed.clinic.id, ActionType.UPDATE, Module.ROLES, role_id=seed.reception.id
        )

        assert entry.actor.user_id == seed.owner.id
        assert entry.actor.role_id == seed.reception.id
        assert entry.actor.role_user_id is None
        assert entry.actor.identifier == "owner@central.example"
        assert entry.ip_address is None


# ============================================================================
# list_entries
# ============================================================================


class TestListEntries:
    """Tests pour audit_service.list_entries."""

    @pytest.mark.asyncio
    async def test_scoped_to_organization(self, db_session, session_factory, seed):
        """Test que seules les entrées de l'organisation sont retournées."""
        await audit_service.record(make_entry(seed.clinic.id), session_factory)
        await audit_service.record(make_entry(seed.other_clinic.id), session_factory)

        entries = await audit_service.list_entries(db_session, seed.clinic.id, AuditLogFilters())

        assert [entry.organization_id for entry in entries] == [seed.clinic.id]

    @pytest.mark.asyncio
    async def test_module_filter(self, db_session, session_factory, seed):
        """Test filtre par module."""
        await audit_service.record(make_entry(seed.clinic.id, Module.TASKS), session_factory)
        await audit_service.record(make_entry(seed.clinic.id, Module.ROLES), session_factory)

        entries = await audit_service.list_entries(
            db_session, seed.clinic.id, AuditLogFilters(module=Module.ROLES)
        )

        assert [entry.module for entry in entries] == ["roles"]

    @pytest.mark.asyncio
    async def test_limit_is_capped(self, db_session, session_factory, seed, monkeypatch):
        """Test que la limite demandée est plafonnée par AUDIT_LOG_MAX_LIMIT."""
        monkeypatch.setattr(settings, "AUDIT_LOG_MAX_LIMIT", 2)
        for index in range(4):
            await audit_service.record(
                make_entry(seed.clinic.id, entity_id=f"task-{index}"), session_factory
            )

        entries = await audit_service.list_entries(
            db_session, seed.clinic.id, AuditLogFilters(limit=1000)
        )

        assert len(entries) == 2


# ============================================================================
# HTTP
# ============================================================================


class TestAuditLogEndpoints:
    """Tests des endpoints /audit-log."""

    @pytest.mark.asyncio
    async def test_role_user_records_action(self, client, seed):
        """Test POST par une role user: organisation et auteur issus de la session."""
        await client.post(
            "/api/v1/role-users/session",
            json={"identifier": "V-12345678", "password": seed.ana_password},
        )

        response = await client.post(
            AUDIT_URL,
            json={
                "action_type": "schedule",
                "module": "citas",
                "entity_type": "appointment",
                "entity_id": "apt-42",
                "action_details": {"slot": "09:00"},
            },
            headers={"User-Agent": "reception-desk"},
        )

        assert response.status_code == 201
        assert response.json() == {"success": True, "recorded": True}

        listed = await client.get(
            f"{AUDIT_URL}?role_user_id={seed.ana.id}&module=citas", headers=seed.owner_headers
        )
        entries = listed.json()
        assert len(entries) == 1
        assert entries[0]["organization_id"] == str(seed.clinic.id)
        assert entries[0]["role_id"] == str(seed.reception.id)
        assert entries[0]["user_identifier"] == "V-12345678"
        assert entries[0]["user_agent"] == "reception-desk"

    @pytest.mark.asyncio
    async def test_unknown_module_is_422(self, client, seed):
        """Test 422 pour un module hors énumération."""
        response = await client.post(
            AUDIT_URL,
            json={"action_type": "create", "module": "facturacion"},
            headers=seed.owner_headers,
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_identity_without_organization_is_403(self, client, seed):
        """Test 403 pour un User sans organisation."""
        response = await client.post(
            AUDIT_URL,
            json={"action_type": "view", "module": "pacientes"},
            headers=seed.patient_headers,
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_anonymous_is_401(self, client, seed):
        """Test 401 sans credential."""
        response = await client.post(AUDIT_URL, json={"action_type": "view", "module": "pacientes"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_list_filters_by_action_type(self, client, seed, session_factory):
        """Test filtre action_type et isolation de l'autre organisation."""
        await audit_service.record(
            make_entry(seed.clinic.id, action_type=ActionType.DELETE), session_factory
        )
        await audit_service.record(make_entry(seed.clinic.id), session_factory)
        await audit_service.record(
            make_entry(seed.other_clinic.id, action_type=ActionType.DELETE), session_factory
        )

        response = await client.get(
            f"{AUDIT_URL}?action_type=delete", headers=seed.owner_headers
        )

        assert response.status_code == 200
        assert [entry["action_type"] for entry in response.json()] == ["delete"]

    @pytest.mark.asyncio
    async def test_role_user_without_roles_view_is_403(self, client, seed):
        """Test 403 en lecture pour une role user sans roles.view."""
        await client.post(
            "/api/v1/role-users/session",
            json={"identifier": "V-12345678", "password": seed.ana_password},
        )

        response = await client.get(AUDIT_URL)

        assert response.status_code == 403
