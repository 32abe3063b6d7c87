"""Énumérations du domaine contrôle d'accès.

Les valeurs sont celles persistées en base et échangées avec les clients.
"""

from enum import Enum


class UserRole(str, Enum):
    """Rôle applicatif d'un User authentifié par Keycloak."""

    ADMIN = "ADMIN"
    CLINIC = "CLINICA"
    DOCTOR = "MEDICO"
    NURSE = "ENFERMERA"
    PHARMACY = "FARMACIA"
    LABORATORY = "LABORATORIO"
    PATIENT = "PACIENTE"


# Rôles propriétaires d'une organisation: gestion des rôles, du personnel et accès complet
CLINIC_OWNER_ROLES: frozenset[UserRole] = frozenset(
    {UserRole.ADMIN, UserRole.CLINIC, UserRole.DOCTOR}
)

# Rôles applicatifs autorisés à manipuler des dossiers cliniques
CLINICAL_STAFF_ROLES: frozenset[UserRole] = frozenset(
    {UserRole.ADMIN, UserRole.CLINIC, UserRole.DOCTOR, UserRole.NURSE}
)


class Module(str, Enum):
    """Modules fonctionnels soumis à la matrice de permissions des rôles."""

    PATIENTS = "pacientes"
    CONSULTATIONS = "consultas"
    APPOINTMENTS = "citas"
    PRESCRIPTIONS = "recetas"
    ORDERS = "ordenes"
    RESULTS = "resultados"
    MESSAGES = "mensajes"
    TASKS = "tareas"
    REPORTS = "reportes"
    ROLES = "roles"


class PermissionAction(str, Enum):
    """Capacités d'une matrice de permissions."""

    VIEW = "view"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ActionType(str, Enum):
    """Types d'actions consignées dans le journal d'audit."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    VIEW = "view"
    CONFIRM = "confirm"
    SCHEDULE = "schedule"
    CANCEL = "cancel"
    APPROVE = "approve"
    REJECT = "reject"
    LOGIN = "login"
    LOGOUT = "logout"


class PatientKind(str, Enum):
    """Espace d'identité d'un patient."""

    REGISTERED = "registered"
    UNREGISTERED = "unregistered"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    CANCELLED = "cancelled"
