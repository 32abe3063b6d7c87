# Modèles SQLAlchemy pour core-clinic-access
#
# - Organization: frontière tenant
# - User: identité applicative (Keycloak)
# - Role / RolePermission / RoleUser: rôles personnalisés et personnel interne
# - Patient / UnregisteredPatient: les deux espaces d'identité patient
# - AuditEntry: journal append-only
# - Task / Consultation: dossiers cliniques avec référence patient XOR

from .audit_entry import AuditEntry
from .clinical_record import Consultation, PatientLinkMixin, Task
from .organization import Organization
from .patient import Patient, UnregisteredPatient
from .role import Role, RolePermission
from .role_user import RoleUser
from .user import User

__all__ = [
    "AuditEntry",
    "Consultation",
    "Organization",
    "Patient",
    "PatientLinkMixin",
    "Role",
    "RolePermission",
    "RoleUser",
    "Task",
    "UnregisteredPatient",
    "User",
]
