"""
RFC 9457 Problem Details pour HTTP APIs - Exceptions du contrôle d'accès clinique.

Ce module réexporte les exceptions du module fastapi-errors-rfc9457 et définit
la taxonomie d'erreurs du domaine (authentification, sessions role user,
registre de permissions, résolution d'identité patient).
"""

from fastapi_errors_rfc9457 import (
    ConflictError,
    ForbiddenError,
    InternalServerError,
    NotFoundError,
    ProblemDetail,
    RFC9457Exception,
    ServiceUnavailableError,
    UnauthorizedError,
    ValidationError,
)


class KeycloakServiceError(ServiceUnavailableError):
    """
    Exception levée lorsque le service Keycloak est indisponible.

    Les échecs de connexion sont d'abord retentés (voir app.core.retry),
    cette exception n'est levée qu'après épuisement des tentatives.

    Example:
        ```python
        try:
            subject = await provider.verify_password(email, password)
        except KeycloakConnectionError as e:
            raise KeycloakServiceError(detail="Identity provider unreachable") from e
        ```
    """

    def __init__(
        self,
        detail: str = "Keycloak service is unavailable",
        instance: str | None = None,
        retry_after: int | None = None,
    ):
        super().__init__(
            detail=detail,
            retry_after=retry_after,
            instance=instance,
        )


class ProfileNotFoundError(RFC9457Exception):
    """
    Credential valide chez le fournisseur d'identité mais aucun profil local.

    Distinct d'une absence d'authentification: le statut (401 ou 403) est
    choisi par l'appelant selon le contexte.
    """

    def __init__(
        self,
        subject_id: str | None = None,
        status_code: int = 403,
        instance: str | None = None,
    ):
        super().__init__(
            status_code=status_code,
            title="Profile Not Found",
            detail="Authenticated credential has no local user profile",
            instance=instance,
            subject_id=subject_id,
        )


class InvalidLoginRequestError(RFC9457Exception):
    """Requête de login incomplète (mot de passe ou identifiant manquant)."""

    def __init__(self, detail: str, instance: str | None = None):
        super().__init__(
            status_code=400,
            title="Invalid Login Request",
            detail=detail,
            instance=instance,
            error=detail,
        )


class InvalidCredentialsError(RFC9457Exception):
    """Mot de passe refusé par le fournisseur d'identité."""

    def __init__(self, instance: str | None = None):
        detail = "Invalid credentials"
        super().__init__(
            status_code=401,
            title="Invalid Credentials",
            detail=detail,
            instance=instance,
            error=detail,
        )


class DisabledAccountError(RFC9457Exception):
    """
    Compte role user désactivé.

    Le message est destiné à l'utilisateur final: le credential peut rester
    valide chez le fournisseur d'identité, seul l'administrateur de la
    clinique peut réactiver le compte.
    """

    def __init__(self, role_user_id: str | None = None, instance: str | None = None):
        detail = "This account has been disabled. Contact your clinic administrator."
        super().__init__(
            status_code=403,
            title="Account Disabled",
            detail=detail,
            instance=instance,
            error=detail,
            role_user_id=role_user_id,
        )


class RoleUserNotFoundError(RFC9457Exception):
    """Aucun role user ne correspond à l'identifiant ou à l'email fourni."""

    def __init__(self, detail: str = "User not found", instance: str | None = None):
        super().__init__(
            status_code=404,
            title="Role User Not Found",
            detail=detail,
            instance=instance,
            error=detail,
        )


class RoleNotFoundError(RFC9457Exception):
    """Rôle inexistant ou inactif."""

    def __init__(self, role_id: str | None = None, instance: str | None = None):
        detail = "Role not found"
        super().__init__(
            status_code=404,
            title="Role Not Found",
            detail=detail,
            instance=instance,
            error=detail,
            role_id=role_id,
        )


class DuplicateRoleNameError(ConflictError):
    """Un rôle actif porte déjà ce nom dans l'organisation."""

    def __init__(self, role_name: str, existing_role_id: str, instance: str | None = None):
        super().__init__(
            detail=f"A role named '{role_name}' already exists in this organization",
            conflicting_resource=f"/api/v1/roles/{existing_role_id}",
            instance=instance,
        )


class DuplicateIdentifierError(RFC9457Exception):
    """
    Identifiant national déjà présent dans l'un des deux espaces patients.

    Porte l'id du patient existant pour que le client redirige vers lui
    au lieu de réessayer.

    Example:
        ```python
        raise DuplicateIdentifierError(
            identifier="V-9999999",
            existing_patient_id=str(existing.id),
            existing_patient_kind="unregistered",
        )
        ```
    """

    def __init__(
        self,
        identifier: str,
        existing_patient_id: str,
        existing_patient_kind: str,
        instance: str | None = None,
    ):
        detail = (
            f"National identifier '{identifier}' is already registered "
            f"for an existing {existing_patient_kind} patient"
        )
        super().__init__(
            status_code=409,
            title="Duplicate Identifier",
            detail=detail,
            instance=instance,
            error=detail,
            existing_patient_id=existing_patient_id,
            existing_patient_kind=existing_patient_kind,
        )


class UnknownPatientError(RFC9457Exception):
    """L'id patient fourni ne se résout dans aucun des deux espaces patients."""

    def __init__(self, patient_id: str, instance: str | None = None):
        super().__init__(
            status_code=400,
            title="Ambiguous Or Unknown Patient",
            detail=f"Patient '{patient_id}' could not be resolved to a registered or unregistered patient",
            instance=instance,
            patient_id=patient_id,
        )


__all__ = [
    "ConflictError",
    "DisabledAccountError",
    "DuplicateIdentifierError",
    "DuplicateRoleNameError",
    "ForbiddenError",
    "InternalServerError",
    "InvalidCredentialsError",
    "InvalidLoginRequestError",
    "KeycloakServiceError",
    "NotFoundError",
    "ProblemDetail",
    "ProfileNotFoundError",
    "RFC9457Exception",
    "RoleNotFoundError",
    "RoleUserNotFoundError",
    "ServiceUnavailableError",
    "UnauthorizedError",
    "UnknownPatientError",
    "ValidationError",
]
