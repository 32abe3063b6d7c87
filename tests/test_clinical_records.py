"""
Tests des dossiers cliniques (tâches, consultations).

- Référence patient XOR garantie par la contrainte CHECK, quelle que soit la voie d'écriture
- Scope tenant appliqué sur l'organisation de la ligne lue
- Référence patient non résolue: 400
"""

from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.models import AuditEntry, Consultation, Patient, Task, UnregisteredPatient
from app.schemas.clinical import TaskCreate, TaskUpdate
from app.schemas.enums import PatientKind, TaskStatus
from app.services import clinical_record_service


@pytest.fixture
async def patients(db_session, seed):
    """Un patient inscrit et un patient de passage de la clinique centrale."""
    registered = Patient(first_name="María", last_name="González", identifier="V-11111111")
    walk_in = UnregisteredPatient(
        organization_id=seed.clinic.id,
        first_name="José",
        last_name="Rojas",
        identification="V-22222222",
        phone="0412-2222222",
    )
    db_session.add_all([registered, walk_in])
    await db_session.commit()
    return registered, walk_in


# ============================================================================
# Contrainte XOR
# ============================================================================


class TestPatientXorConstraint:
    """Tests de la contrainte CHECK patient_id XOR unregistered_patient_id."""

    @pytest.mark.asyncio
    async def test_both_references_rejected(self, db_session, seed, patients):
        """Test qu'une tâche ne peut référencer les deux espaces à la fois."""
        registered, walk_in = patients
        db_session.add(
            Task(
                organization_id=seed.clinic.id,
                title="Double référence",
                patient_id=registered.id,
                unregistered_patient_id=walk_in.id,
            )
        )

        with pytest.raises(IntegrityError):
            await db_session.commit()

    @pytest.mark.asyncio
    async def test_no_reference_rejected(self, db_session, seed):
        """Test qu'une consultation doit référencer un patient."""
        db_session.add(Consultation(organization_id=seed.clinic.id, chief_complaint="Fièvre"))

        with pytest.raises(IntegrityError):
            await db_session.commit()


# ============================================================================
# Service
# ============================================================================


class TestTaskService:
    """Tests pour clinical_record_service."""

    @pytest.mark.asyncio
    async def test_task_for_walk_in_uses_unregistered_column(self, db_session, seed, patients):
        """Test qu'un patient de passage est porté par unregistered_patient_id."""
        _, walk_in = patients

        task, view = await clinical_record_service.create_task(
            db_session,
            seed.clinic.id,
            TaskCreate(title="Rappeler", patient_id=walk_in.id),
            created_by="kc-owner",
        )

        assert task.patient_id is None
        assert task.unregistered_patient_id == walk_in.id
        assert view.kind == PatientKind.UNREGISTERED

    @pytest.mark.asyncio
    async def test_load_patient_views_by_column(self, db_session, seed, patients):
        """Test vues chargées pour les deux espaces, indexées par id patient."""
        registered, walk_in = patients
        first, _ = await clinical_record_service.create_task(
            db_session, seed.clinic.id, TaskCreate(title="A", patient_id=registered.id)
        )
        second, _ = await clinical_record_service.create_task(
            db_session,
            seed.clinic.id,
            TaskCreate(title="B", unregistered_patient_id=walk_in.id),
        )

        views = await clinical_record_service.load_patient_views(db_session, [first, second])

        assert views[registered.id].kind == PatientKind.REGISTERED
        assert views[walk_in.id].kind == PatientKind.UNREGISTERED

    @pytest.mark.asyncio
    async def test_update_records_changes(self, db_session, seed, patients):
        """Test changements retournés pour l'audit, statut sérialisé en valeur."""
        registered, _ = patients
        task, _ = await clinical_record_service.create_task(
            db_session, seed.clinic.id, TaskCreate(title="A", patient_id=registered.id)
        )

        task, changes = await clinical_record_service.update_task(
            db_session, task, TaskUpdate(status=TaskStatus.DONE)
        )

        assert task.status == "done"
        assert changes == {"status": {"from": "pending", "to": "done"}}

    @pytest.mark.asyncio
    async def test_update_without_change(self, db_session, seed, patients):
        """Test aucune écriture ni changement pour une valeur identique."""
        registered, _ = patients
        task, _ = await clinical_record_service.create_task(
            db_session, seed.clinic.id, TaskCreate(title="A", patient_id=registered.id)
        )

        _, changes = await clinical_record_service.update_task(
            db_session, task, TaskUpdate(title="A")
        )

        assert changes == {}


# ============================================================================
# HTTP
# ============================================================================


class TestTaskEndpoints:
    """Tests des endpoints /tasks."""

    @pytest.mark.asyncio
    async def test_owner_creates_task(self, client, seed, patients, session_factory):
        """Test création par le propriétaire, audit consigné."""
        registered, _ = patients

        response = await client.post(
            "/api/v1/tasks",
            json={"title": "Résultats", "patient": {"kind": "registered", "id": str(registered.id)}},
            headers=seed.owner_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["organization_id"] == str(seed.clinic.id)
        assert data["patient_id"] == str(registered.id)
        assert data["unregistered_patient_id"] is None
        assert data["patient"]["kind"] == "registered"

        async with session_factory() as session:
            result = await session.execute(select(AuditEntry).where(AuditEntry.module == "tareas"))
            entry = result.scalar_one()
            assert entry.entity_id == data["id"]
            assert entry.user_id == seed.owner.id

    @pytest.mark.asyncio
    async def test_role_user_creates_task_with_session(self, client, seed, patients):
        """Test création par un role user disposant de tareas.create."""
        _, walk_in = patients
        await client.post(
            "/api/v1/role-users/session",
            json={"identifier": "V-12345678", "password": seed.ana_password},
        )

        response = await client.post(
            "/api/v1/tasks", json={"title": "Appeler", "patient_id": str(walk_in.id)}
        )

        assert response.status_code == 201
        assert response.json()["created_by"] == str(seed.ana.id)

    @pytest.mark.asyncio
    async def test_both_patient_references_is_422(self, client, seed, patients):
        """Test qu'un payload portant deux références est refusé à la validation."""
        registered, walk_in = patients

        response = await client.post(
            "/api/v1/tasks",
            json={
                "title": "Ambigu",
                "patient_id": str(registered.id),
                "unregistered_patient_id": str(walk_in.id),
            },
            headers=seed.owner_headers,
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_patient_is_400(self, client, seed, patients):
        """Test 400 pour un id patient introuvable."""
        response = await client.post(
            "/api/v1/tasks",
            json={"title": "Fantôme", "patient_id": str(uuid4())},
            headers=seed.owner_headers,
        )

        assert response.status_code == 400
        assert response.headers["content-type"] == "application/problem+json"

    @pytest.mark.asyncio
    async def test_other_organization_cannot_read_or_update(self, client, seed, patients):
        """Test 403 en lecture et écriture sur la tâche d'une autre organisation."""
        registered, _ = patients
        created = await client.post(
            "/api/v1/tasks",
            json={"title": "Privée", "patient_id": str(registered.id)},
            headers=seed.owner_headers,
        )
        task_id = created.json()["id"]

        read = await client.get(f"/api/v1/tasks/{task_id}", headers=seed.other_owner_headers)
        write = await client.patch(
            f"/api/v1/tasks/{task_id}",
            json={"status": "done"},
            headers=seed.other_owner_headers,
        )
        listed = await client.get("/api/v1/tasks", headers=seed.other_owner_headers)

        assert read.status_code == 403
        assert write.status_code == 403
        assert listed.json() == []

    @pytest.mark.asyncio
    async def test_update_task_status(self, client, seed, patients):
        """Test mise à jour du statut et filtre par statut."""
        registered, _ = patients
        created = await client.post(
            "/api/v1/tasks",
            json={"title": "Suivi", "patient_id": str(registered.id)},
            headers=seed.owner_headers,
        )
        task_id = created.json()["id"]

        updated = await client.patch(
            f"/api/v1/tasks/{task_id}", json={"status": "done"}, headers=seed.owner_headers
        )
        done = await client.get("/api/v1/tasks?status=done", headers=seed.owner_headers)
        pending = await client.get("/api/v1/tasks?status=pending", headers=seed.owner_headers)

        assert updated.status_code == 200
        assert updated.json()["status"] == "done"
        assert [task["id"] for task in done.json()] == [task_id]
        assert pending.json() == []

    @pytest.mark.asyncio
    async def test_unknown_task_is_404(self, client, seed):
        """Test 404 pour un id de tâche inconnu."""
        response = await client.get(f"/api/v1/tasks/{uuid4()}", headers=seed.owner_headers)

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_patient_role_is_forbidden(self, client, seed):
        """Test 403 pour un User patient."""
        response = await client.get("/api/v1/tasks", headers=seed.patient_headers)

        assert response.status_code == 403


class TestConsultationEndpoints:
    """Tests des endpoints /consultations."""

    @pytest.mark.asyncio
    async def test_doctor_creates_consultation(self, client, seed, patients):
        """Test consultation d'un patient de passage, médecin renseigné."""
        _, walk_in = patients

        response = await client.post(
            "/api/v1/consultations",
            json={"unregistered_patient_id": str(walk_in.id), "chief_complaint": "Céphalées"},
            headers=seed.doctor_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["doctor_id"] == str(seed.doctor.id)
        assert data["unregistered_patient_id"] == str(walk_in.id)
        assert data["started_at"] is not None

        listed = await client.get("/api/v1/consultations", headers=seed.owner_headers)
        assert [c["id"] for c in listed.json()] == [data["id"]]
        assert listed.json()[0]["patient"]["identifier"] == "V-22222222"

    @pytest.mark.asyncio
    async def test_role_user_without_module_permission(self, client, seed, patients):
        """Test 403 pour un role user sans permission sur consultas."""
        _, walk_in = patients
        await client.post(
            "/api/v1/role-users/session",
            json={"identifier": "V-12345678", "password": seed.ana_password},
        )

        response = await client.post(
            "/api/v1/consultations", json={"patient_id": str(walk_in.id)}
        )

        assert response.status_code == 403
