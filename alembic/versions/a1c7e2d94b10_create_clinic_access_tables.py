"""Create clinic access tables

Revision ID: a1c7e2d94b10
Revises:
Create Date: 2026-10-17 09:12:03.218411

Schéma initial du contrôle d'accès clinique:
- organizations, users: tenants et Users applicatifs (Keycloak)
- roles, role_permissions, role_users: rôles personnalisés et personnel interne
- patients, unregistered_patients: les deux espaces d'identité patient
- tasks, consultations: dossiers cliniques avec contrainte XOR patient
- audit_entries: journal d'audit append-only
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a1c7e2d94b10"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps(with_updated_at: bool = True) -> list[sa.Column]:
    columns = [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        )
    ]
    if with_updated_at:
        columns.append(
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                server_default=sa.text("now()"),
                nullable=False,
            )
        )
    return columns


def _patient_link_columns() -> list[sa.Column]:
    return [
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("patient_id", sa.Uuid(), nullable=True),
        sa.Column("unregistered_patient_id", sa.Uuid(), nullable=True),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["patient_id"], ["patients.id"]),
        sa.ForeignKeyConstraint(["unregistered_patient_id"], ["unregistered_patients.id"]),
    ]


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False, comment="Nom commercial de l'organisation"),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(with_updated_at=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column(
            "auth_id",
            sa.String(255),
            nullable=False,
            comment="Identifiant du sujet (sub) dans Keycloak",
        ),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, comment="Rôle applicatif (voir UserRole)"),
        sa.Column("organization_id", sa.Uuid(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_auth_id", "users", ["auth_id"], unique=True)
    op.create_index("ix_users_email", "users", ["email"])
    op.create_index("ix_users_organization_id", "users", ["organization_id"])

    op.create_table(
        "roles",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("role_name", sa.String(100), nullable=False),
        sa.Column("role_description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.String(255), nullable=True, comment="auth_id Keycloak du créateur"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_roles_organization_id", "roles", ["organization_id"])
    op.create_index("ix_roles_is_active", "roles", ["is_active"])

    op.create_table(
        "role_permissions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("role_id", sa.Uuid(), nullable=False),
        sa.Column("module", sa.String(50), nullable=False),
        sa.Column("can_view", sa.Boolean(), nullable=False),
        sa.Column("can_create", sa.Boolean(), nullable=False),
        sa.Column("can_update", sa.Boolean(), nullable=False),
        sa.Column("can_delete", sa.Boolean(), nullable=False),
        *_timestamps(with_updated_at=False),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("role_id", "module", name="uq_role_permissions_role_module"),
    )
    op.create_index("ix_role_permissions_role_id", "role_permissions", ["role_id"])

    op.create_table(
        "role_users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("role_id", sa.Uuid(), nullable=False),
        sa.Column("auth_id", sa.String(255), nullable=True, comment="Identifiant du compte Keycloak lié"),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("identifier", sa.String(50), nullable=False, comment="Identifiant national (cédule)"),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(30), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column(
            "last_access_at",
            sa.DateTime(timezone=True),
            nullable=True,
            comment="Dernier login réussi",
        ),
        sa.Column("created_by", sa.String(255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("auth_id"),
        sa.UniqueConstraint("organization_id", "identifier", name="uq_role_users_org_identifier"),
    )
    op.create_index("ix_role_users_organization_id", "role_users", ["organization_id"])
    op.create_index("ix_role_users_role_id", "role_users", ["role_id"])
    op.create_index("ix_role_users_identifier", "role_users", ["identifier"])
    op.create_index("ix_role_users_email", "role_users", ["email"])
    op.create_index("ix_role_users_is_active", "role_users", ["is_active"])

    op.create_table(
        "patients",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("auth_id", sa.String(255), nullable=True, comment="Sujet Keycloak du patient"),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column(
            "identifier",
            sa.String(50),
            nullable=True,
            comment="Identifiant national (cédule, passeport)",
        ),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(30), nullable=True),
        sa.Column("birth_date", sa.Date(), nullable=True),
        sa.Column("sex", sa.String(10), nullable=True),
        sa.Column("emergency_qr_token", sa.String(128), nullable=True),
        sa.Column("emergency_qr_enabled", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("auth_id"),
    )
    op.create_index("ix_patients_identifier", "patients", ["identifier"], unique=True)
    op.create_index(
        "ix_patients_emergency_qr_token", "patients", ["emergency_qr_token"], unique=True
    )

    op.create_table(
        "unregistered_patients",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column(
            "identification",
            sa.String(50),
            nullable=True,
            comment="Identifiant national (cédule, passeport)",
        ),
        sa.Column("birth_date", sa.Date(), nullable=True),
        sa.Column("sex", sa.String(10), nullable=True),
        sa.Column("phone", sa.String(30), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("allergies", sa.Text(), nullable=True),
        sa.Column("chronic_conditions", sa.Text(), nullable=True),
        sa.Column("current_medication", sa.Text(), nullable=True),
        sa.Column("motive", sa.Text(), nullable=True, comment="Motif de visite"),
        sa.Column("created_by", sa.String(255), nullable=True, comment="User ou RoleUser créateur"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_unregistered_patients_organization_id", "unregistered_patients", ["organization_id"]
    )
    op.create_index(
        "ix_unregistered_patients_identification",
        "unregistered_patients",
        ["identification"],
        unique=True,
    )

    op.create_table(
        "tasks",
        sa.Column("id", sa.Uuid(), nullable=False),
        *_patient_link_columns(),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "(patient_id IS NULL) <> (unregistered_patient_id IS NULL)",
            name="ck_tasks_patient_xor",
        ),
    )
    op.create_index("ix_tasks_organization_id", "tasks", ["organization_id"])
    op.create_index("ix_tasks_patient_id", "tasks", ["patient_id"])
    op.create_index("ix_tasks_unregistered_patient_id", "tasks", ["unregistered_patient_id"])

    op.create_table(
        "consultations",
        sa.Column("id", sa.Uuid(), nullable=False),
        *_patient_link_columns(),
        sa.Column("doctor_id", sa.Uuid(), nullable=True, comment="Médecin responsable"),
        sa.Column("chief_complaint", sa.Text(), nullable=True),
        sa.Column("diagnosis", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["doctor_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "(patient_id IS NULL) <> (unregistered_patient_id IS NULL)",
            name="ck_consultations_patient_xor",
        ),
    )
    op.create_index("ix_consultations_organization_id", "consultations", ["organization_id"])
    op.create_index("ix_consultations_patient_id", "consultations", ["patient_id"])
    op.create_index(
        "ix_consultations_unregistered_patient_id", "consultations", ["unregistered_patient_id"]
    )

    op.create_table(
        "audit_entries",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("role_id", sa.Uuid(), nullable=True),
        sa.Column("role_user_id", sa.Uuid(), nullable=True),
        sa.Column(
            "user_id",
            sa.Uuid(),
            nullable=True,
            comment="User applicatif auteur (si pas un role user)",
        ),
        sa.Column("user_first_name", sa.String(100), nullable=True),
        sa.Column("user_last_name", sa.String(100), nullable=True),
        sa.Column("user_identifier", sa.String(255), nullable=True),
        sa.Column("action_type", sa.String(20), nullable=False),
        sa.Column("module", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(100), nullable=True),
        sa.Column("entity_id", sa.String(100), nullable=True),
        sa.Column("action_details", sa.JSON(), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        *_timestamps(with_updated_at=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_entries_organization_id", "audit_entries", ["organization_id"])
    op.create_index("ix_audit_entries_role_id", "audit_entries", ["role_id"])
    op.create_index("ix_audit_entries_role_user_id", "audit_entries", ["role_user_id"])
    op.create_index("ix_audit_entries_action_type", "audit_entries", ["action_type"])
    op.create_index("ix_audit_entries_module", "audit_entries", ["module"])
    op.create_index("ix_audit_entries_created_at", "audit_entries", ["created_at"])


def downgrade() -> None:
    op.drop_table("audit_entries")
    op.drop_table("consultations")
    op.drop_table("tasks")
    op.drop_table("unregistered_patients")
    op.drop_table("patients")
    op.drop_table("role_users")
    op.drop_table("role_permissions")
    op.drop_table("roles")
    op.drop_table("users")
    op.drop_table("organizations")
