"""Tests unitaires du fournisseur d'identité Keycloak (python-keycloak mocké)."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from keycloak.exceptions import (
    KeycloakAuthenticationError,
    KeycloakConnectionError,
    KeycloakDeleteError,
)

from app.core.config import settings
from app.core.exceptions import KeycloakServiceError
from app.core.identity_provider import CredentialRejectedError, KeycloakIdentityProvider

EXPECTED_ISSUER = f"{settings.KEYCLOAK_SERVER_URL.rstrip('/')}/realms/{settings.KEYCLOAK_REALM}"


@pytest.fixture
def token_info():
    """Token décodé typique Keycloak."""
    return {
        "sub": "kc-ana",
        "email": "ana@central.example",
        "iss": EXPECTED_ISSUER,
        "azp": settings.KEYCLOAK_CLIENT_ID,
        "aud": ["account"],
    }


@pytest.fixture
def provider():
    """KeycloakIdentityProvider dont le client OpenID est remplacé par un mock."""
    instance = KeycloakIdentityProvider()
    instance._openid = MagicMock()
    instance._openid.a_decode_token = AsyncMock()
    instance._openid.a_token = AsyncMock()
    instance._openid.a_userinfo = AsyncMock()
    return instance


class TestCheckClaims:
    """Tests pour la validation iss / azp / aud."""

    def test_valid_claims(self, provider, token_info):
        """Test token conforme."""
        provider._check_claims(token_info)

    def test_invalid_issuer(self, provider, token_info):
        """Test émetteur d'un autre realm refusé."""
        token_info["iss"] = "http://localhost:8080/realms/other"

        with pytest.raises(CredentialRejectedError, match="Invalid issuer"):
            provider._check_claims(token_info)

    def test_audience_as_string(self, provider, token_info):
        """Test audience fournie en chaîne simple."""
        token_info["aud"] = settings.KEYCLOAK_CLIENT_ID

        provider._check_claims(token_info)

    def test_invalid_audience(self, provider, token_info):
        """Test audience inconnue refusée."""
        token_info["aud"] = ["billing-service"]

        with pytest.raises(CredentialRejectedError, match="Invalid audience"):
            provider._check_claims(token_info)


class TestVerifyToken:
    """Tests pour verify_token."""

    @pytest.mark.asyncio
    async def test_returns_subject(self, provider, token_info):
        """Test sujet et email extraits du token."""
        provider._openid.a_decode_token.return_value = token_info

        subject = await provider.verify_token("jwt")

        assert subject.subject_id == "kc-ana"
        assert subject.email == "ana@central.example"

    @pytest.mark.asyncio
    async def test_decode_failure_is_rejection(self, provider):
        """Test signature ou expiration invalide: credential refusé."""
        provider._openid.a_decode_token.side_effect = ValueError("Signature verification failed")

        with pytest.raises(CredentialRejectedError):
            await provider.verify_token("jwt")

    @pytest.mark.asyncio
    async def test_missing_subject(self, provider, token_info):
        """Test token sans sub refusé."""
        del token_info["sub"]
        provider._openid.a_decode_token.return_value = token_info

        with pytest.raises(CredentialRejectedError, match="no subject"):
            await provider.verify_token("jwt")


class TestVerifyPassword:
    """Tests pour verify_password (grant password)."""

    @pytest.mark.asyncio
    async def test_valid_password(self, provider):
        """Test mot de passe accepté: sujet issu de userinfo."""
        provider._openid.a_token.return_value = {"access_token": "at"}
        provider._openid.a_userinfo.return_value = {"sub": "kc-ana", "email": "ana@central.example"}

        subject = await provider.verify_password("ana@central.example", "secret")

        assert subject.subject_id == "kc-ana"
        provider._openid.a_token.assert_awaited_once_with(
            username="ana@central.example", password="secret"
        )

    @pytest.mark.asyncio
    async def test_wrong_password_is_rejection(self, provider):
        """Test refus d'authentification converti en CredentialRejectedError, sans retry."""
        provider._openid.a_token.side_effect = KeycloakAuthenticationError("invalid_grant")

        with pytest.raises(CredentialRejectedError):
            await provider.verify_password("ana@central.example", "wrong")

        assert provider._openid.a_token.await_count == 1

    @pytest.mark.asyncio
    async def test_unreachable_keycloak_is_service_error(self, provider):
        """Test Keycloak injoignable: retries puis 503."""
        provider._openid.a_token.side_effect = KeycloakConnectionError("connection refused")

        with pytest.raises(KeycloakServiceError):
            await provider.verify_password("ana@central.example", "secret")

        assert provider._openid.a_token.await_count == settings.KEYCLOAK_RETRY_ATTEMPTS


class TestAccountAdministration:
    """Tests du provisioning des comptes role user."""

    @pytest.mark.asyncio
    async def test_create_account_payload(self, provider):
        """Test attributs Keycloak en listes et credential non temporaire."""
        admin = MagicMock()
        admin.a_create_user = AsyncMock(return_value="kc-new")
        provider._admin = admin

        subject_id = await provider.create_account(
            email="luis@central.example",
            password="long-enough",
            first_name="Luis",
            last_name="Rivas",
            attributes={"isRoleUser": "true", "roleId": "r-1"},
        )

        assert subject_id == "kc-new"
        payload = admin.a_create_user.await_args.args[0]
        assert payload["attributes"] == {"isRoleUser": ["true"], "roleId": ["r-1"]}
        assert payload["credentials"][0]["temporary"] is False

    @pytest.mark.asyncio
    async def test_set_account_enabled(self, provider):
        """Test activation/désactivation via l'API admin."""
        admin = MagicMock()
        admin.a_update_user = AsyncMock()
        provider._admin = admin

        await provider.set_account_enabled("kc-ana", False)

        admin.a_update_user.assert_awaited_once_with("kc-ana", {"enabled": False})

    @pytest.mark.asyncio
    async def test_delete_account(self, provider):
        """Test suppression d'un compte via l'API admin."""
        admin = MagicMock()
        admin.a_delete_user = AsyncMock()
        provider._admin = admin

        await provider.delete_account("kc-new")

        admin.a_delete_user.assert_awaited_once_with("kc-new")

    @pytest.mark.asyncio
    async def test_delete_account_refused(self, provider):
        """Test suppression refusée par Keycloak: erreur de service."""
        admin = MagicMock()
        admin.a_delete_user = AsyncMock(
            side_effect=KeycloakDeleteError(error_message="not found", response_code=404)
        )
        provider._admin = admin

        with pytest.raises(KeycloakServiceError):
            await provider.delete_account("kc-new")
