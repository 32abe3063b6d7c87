"""Accès au fournisseur d'identité externe (Keycloak).

Le reste du service ne connaît que le protocole IdentityProvider: vérifier
un bearer token, vérifier un couple email/mot de passe, provisionner et
activer/désactiver les comptes des role users. L'implémentation Keycloak
utilise python-keycloak; les tests injectent un fournisseur en mémoire via
`app.dependency_overrides[get_identity_provider]`.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Protocol

from keycloak import KeycloakAdmin, KeycloakOpenID
from keycloak.exceptions import KeycloakAuthenticationError, KeycloakConnectionError, KeycloakError
from opentelemetry import trace

from app.core.config import settings
from app.core.exceptions import KeycloakServiceError
from app.core.retry import async_retry_with_backoff

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(frozen=True)
class VerifiedSubject:
    """Sujet authentifié par le fournisseur d'identité."""

    subject_id: str
    email: str | None = None


class CredentialRejectedError(Exception):
    """Le fournisseur d'identité refuse le credential (token invalide, mauvais mot de passe)."""


class IdentityProvider(Protocol):
    async def verify_token(self, token: str) -> VerifiedSubject: ...

    async def verify_password(self, email: str, password: str) -> VerifiedSubject: ...

    async def create_account(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        attributes: dict[str, str],
    ) -> str: ...

    async def set_account_enabled(self, subject_id: str, enabled: bool) -> None: ...

    async def delete_account(self, subject_id: str) -> None: ...


class KeycloakIdentityProvider:
    """
    Implémentation Keycloak.

    - Tokens: validation de signature/expiration par `a_decode_token`, puis
      contrôle iss (hors DEBUG), azp (si KEYCLOAK_ALLOWED_AZP) et aud.
    - Mots de passe: grant "password" (Direct Access Grants activé sur le client).
    - Comptes: API admin via le service account du client (KEYCLOAK_CLIENT_SECRET).
    """

    def __init__(self) -> None:
        self._openid = KeycloakOpenID(
            server_url=settings.KEYCLOAK_SERVER_URL,
            client_id=settings.KEYCLOAK_CLIENT_ID,
            realm_name=settings.KEYCLOAK_REALM,
            client_secret_key=settings.KEYCLOAK_CLIENT_SECRET,
        )
        self._admin: KeycloakAdmin | None = None

    def _get_admin(self) -> KeycloakAdmin:
        if self._admin is None:
            self._admin = KeycloakAdmin(
                server_url=settings.KEYCLOAK_SERVER_URL,
                realm_name=settings.KEYCLOAK_REALM,
                client_id=settings.KEYCLOAK_CLIENT_ID,
                client_secret_key=settings.KEYCLOAK_CLIENT_SECRET,
                verify=True,
            )
        return self._admin

    @async_retry_with_backoff(
        max_attempts=settings.KEYCLOAK_RETRY_ATTEMPTS, exceptions=(KeycloakConnectionError,)
    )
    async def _decode(self, token: str) -> dict:
        return await self._openid.a_decode_token(token, validate=True)

    @async_retry_with_backoff(
        max_attempts=settings.KEYCLOAK_RETRY_ATTEMPTS, exceptions=(KeycloakConnectionError,)
    )
    async def _password_grant(self, email: str, password: str) -> dict:
        return await self._openid.a_token(username=email, password=password)

    @async_retry_with_backoff(
        max_attempts=settings.KEYCLOAK_RETRY_ATTEMPTS, exceptions=(KeycloakConnectionError,)
    )
    async def _userinfo(self, access_token: str) -> dict:
        return await self._openid.a_userinfo(access_token)

    def _check_claims(self, token_info: dict) -> None:
        iss = token_info.get("iss")
        if not settings.DEBUG:
            expected_issuer = (
                f"{settings.KEYCLOAK_SERVER_URL.rstrip('/')}/realms/{settings.KEYCLOAK_REALM}"
            )
            if iss != expected_issuer:
                raise CredentialRejectedError(
                    f"Invalid issuer: {iss}. Expected: {expected_issuer}"
                )
        else:
            logger.debug(f"DEBUG mode: Skipping issuer validation. Token issuer: {iss}")

        azp = token_info.get("azp")
        if settings.KEYCLOAK_ALLOWED_AZP and azp not in settings.KEYCLOAK_ALLOWED_AZP:
            raise CredentialRejectedError(f"Invalid azp: {azp}")

        aud = token_info.get("aud", [])
        if isinstance(aud, str):
            aud = [aud]
        valid_audiences = {"account", settings.KEYCLOAK_CLIENT_ID}
        if not any(audience in valid_audiences for audience in aud):
            raise CredentialRejectedError(f"Invalid audience: {aud}")

    async def verify_token(self, token: str) -> VerifiedSubject:
        with tracer.start_as_current_span("keycloak_verify_token") as span:
            try:
                token_info = await self._decode(token)
            except KeycloakConnectionError as e:
                span.set_attribute("auth.error", "idp_unreachable")
                raise KeycloakServiceError(detail="Identity provider unreachable") from e
            except Exception as e:
                span.set_attribute("auth.error", "invalid_token")
                raise CredentialRejectedError(f"Token verification failed: {e}") from e

            self._check_claims(token_info)
            subject_id = token_info.get("sub")
            if not subject_id:
                raise CredentialRejectedError("Token has no subject")
            span.set_attribute("auth.subject_id", subject_id)
            return VerifiedSubject(subject_id=subject_id, email=token_info.get("email"))

    async def verify_password(self, email: str, password: str) -> VerifiedSubject:
        with tracer.start_as_current_span("keycloak_verify_password") as span:
            try:
                tokens = await self._password_grant(email, password)
                userinfo = await self._userinfo(tokens["access_token"])
            except KeycloakAuthenticationError as e:
                span.set_attribute("auth.error", "invalid_credentials")
                raise CredentialRejectedError("Invalid credentials") from e
            except KeycloakConnectionError as e:
                span.set_attribute("auth.error", "idp_unreachable")
                raise KeycloakServiceError(detail="Identity provider unreachable") from e

            span.set_attribute("auth.subject_id", userinfo["sub"])
            return VerifiedSubject(subject_id=userinfo["sub"], email=userinfo.get("email"))

    async def create_account(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        attributes: dict[str, str],
    ) -> str:
        with tracer.start_as_current_span("keycloak_create_account"):
            payload = {
                "email": email,
                "username": email,
                "firstName": first_name,
                "lastName": last_name,
                "enabled": True,
                "emailVerified": True,
                "attributes": {key: [value] for key, value in attributes.items()},
                "credentials": [{"type": "password", "value": password, "temporary": False}],
            }
            try:
                return await self._get_admin().a_create_user(payload, exist_ok=False)
            except KeycloakConnectionError as e:
                raise KeycloakServiceError(detail="Identity provider unreachable") from e
            except KeycloakError as e:
                logger.error(f"Keycloak account creation failed for {email}: {e}")
                raise KeycloakServiceError(
                    detail=f"Identity provider refused account creation: {e.error_message}"
                ) from e

    async def set_account_enabled(self, subject_id: str, enabled: bool) -> None:
        with tracer.start_as_current_span("keycloak_set_account_enabled") as span:
            span.set_attribute("auth.subject_id", subject_id)
            span.set_attribute("auth.enabled", enabled)
            try:
                await self._get_admin().a_update_user(subject_id, {"enabled": enabled})
            except KeycloakError as e:
                raise KeycloakServiceError(
                    detail=f"Cannot update identity provider account {subject_id}"
                ) from e

    async def delete_account(self, subject_id: str) -> None:
        with tracer.start_as_current_span("keycloak_delete_account") as span:
            span.set_attribute("auth.subject_id", subject_id)
            try:
                await self._get_admin().a_delete_user(subject_id)
            except KeycloakError as e:
                raise KeycloakServiceError(
                    detail=f"Cannot delete identity provider account {subject_id}"
                ) from e


@lru_cache
def get_identity_provider() -> IdentityProvider:
    """Dépendance FastAPI: fournisseur d'identité du processus."""
    return KeycloakIdentityProvider()
