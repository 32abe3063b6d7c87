"""Tests unitaires du cookie de session signé des role users."""

import base64
from datetime import UTC, datetime
from unittest.mock import Mock
from uuid import uuid4

import pytest
from fastapi import Request, Response

from app.core.config import settings
from app.core.session_cookie import (
    CLOCK_SKEW_SECONDS,
    compute_signature,
    decode_session,
    encode_session,
    read_session,
    set_session_cookie,
)
from app.schemas.access import Capabilities, PermissionEntry
from app.schemas.enums import Module
from app.schemas.session import SessionDescriptor

SECRET = "unit-test-secret"
NOW = 1_760_000_000


@pytest.fixture
def descriptor() -> SessionDescriptor:
    return SessionDescriptor(
        role_user_id=uuid4(),
        role_id=uuid4(),
        organization_id=uuid4(),
        first_name="Ana",
        last_name="Pérez",
        identifier="V-12345678",
        email="ana@central.example",
        role_name="Recepción",
        permissions=[
            PermissionEntry(
                id=uuid4(),
                module=Module.APPOINTMENTS,
                permissions=Capabilities(view=True, create=True),
            )
        ],
        issued_at=datetime.fromtimestamp(NOW, UTC),
    )


class TestComputeSignature:
    """Tests pour le calcul de signature HMAC-SHA256."""

    def test_signature_is_hex_sha256(self):
        """Test format hexadécimal de 64 caractères."""
        signature = compute_signature(b"payload", SECRET, "1234567890")

        assert len(signature) == 64
        assert all(c in "0123456789abcdef" for c in signature)

    def test_signature_depends_on_timestamp(self):
        """Test que le timestamp fait partie des données signées."""
        assert compute_signature(b"payload", SECRET, "1") != compute_signature(
            b"payload", SECRET, "2"
        )


class TestEncodeDecode:
    """Tests de l'enveloppe <payload>.<timestamp>.<signature>."""

    def test_encoded_value_has_three_parts(self, descriptor):
        """Test format de l'enveloppe."""
        value = encode_session(descriptor, secret=SECRET, now=NOW)

        payload, timestamp, signature = value.split(".")
        assert timestamp == str(NOW)
        assert len(signature) == 64
        assert "=" not in payload

    def test_payload_uses_camel_case_keys(self, descriptor):
        """Test que le descripteur est sérialisé en camelCase."""
        payload = encode_session(descriptor, secret=SECRET, now=NOW).split(".")[0]
        raw = base64.urlsafe_b64decode(payload + "=" * (-len(payload) % 4))

        assert b'"roleUserId"' in raw
        assert b'"organizationId"' in raw

    def test_decode_returns_same_descriptor(self, descriptor):
        """Test que le descripteur décodé conserve identité et permissions."""
        value = encode_session(descriptor, secret=SECRET, now=NOW)

        decoded = decode_session(value, secret=SECRET, now=NOW + 10)

        assert decoded == descriptor
        assert decoded.permissions[0].permissions.create is True

    def test_decode_rejects_wrong_secret(self, descriptor):
        """Test qu'une signature d'une autre clé est refusée."""
        value = encode_session(descriptor, secret=SECRET, now=NOW)

        assert decode_session(value, secret="other-secret", now=NOW) is None

    def test_decode_rejects_tampered_payload(self, descriptor):
        """Test qu'un payload modifié invalide la signature."""
        payload, timestamp, signature = encode_session(descriptor, secret=SECRET, now=NOW).split(
            "."
        )
        raw = base64.urlsafe_b64decode(payload + "=" * (-len(payload) % 4))
        forged = raw.replace(b'"create":true', b'"delete":true')
        forged_payload = base64.urlsafe_b64encode(forged).rstrip(b"=").decode()

        assert decode_session(f"{forged_payload}.{timestamp}.{signature}", SECRET, now=NOW) is None

    def test_decode_rejects_expired_envelope(self, descriptor):
        """Test qu'une enveloppe plus vieille que max_age est refusée."""
        value = encode_session(descriptor, secret=SECRET, now=NOW)

        assert decode_session(value, secret=SECRET, max_age=60, now=NOW + 61) is None
        assert decode_session(value, secret=SECRET, max_age=60, now=NOW + 59) is not None

    def test_decode_rejects_future_timestamp(self, descriptor):
        """Test qu'un timestamp au-delà de la tolérance d'horloge est refusé."""
        value = encode_session(descriptor, secret=SECRET, now=NOW + CLOCK_SKEW_SECONDS + 5)

        assert decode_session(value, secret=SECRET, now=NOW) is None

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "no-dots-at-all",
            "a.b",
            "a.b.c.d",
            "payload.not-a-number.signature",
            "payload.123.ñññ",
        ],
    )
    def test_decode_rejects_malformed_values(self, value):
        """Test que les valeurs malformées sont traitées comme une absence de cookie."""
        assert decode_session(value, secret=SECRET, now=NOW) is None

    def test_decode_rejects_signed_garbage_payload(self):
        """Test qu'un payload correctement signé mais illisible est refusé."""
        payload = base64.urlsafe_b64encode(b'{"not":"a descriptor"}').rstrip(b"=")
        signature = compute_signature(payload, SECRET, str(NOW))

        value = f"{payload.decode()}.{NOW}.{signature}"

        assert decode_session(value, secret=SECRET, now=NOW) is None


class TestCookieHelpers:
    """Tests de lecture et d'écriture du cookie sur requête/réponse."""

    def test_read_session_without_cookie(self):
        """Test qu'une requête sans cookie n'a pas de session."""
        request = Mock(spec=Request)
        request.cookies = {}

        assert read_session(request) is None

    def test_read_session_with_valid_cookie(self, descriptor):
        """Test lecture d'un cookie signé avec la clé configurée."""
        request = Mock(spec=Request)
        request.cookies = {settings.SESSION_COOKIE_NAME: encode_session(descriptor)}

        session = read_session(request)

        assert session is not None
        assert session.role_user_id == descriptor.role_user_id

    def test_set_session_cookie_flags(self, descriptor):
        """Test attributs httpOnly, SameSite=lax et max-age du cookie."""
        response = Response()

        set_session_cookie(response, descriptor)

        header = response.headers["set-cookie"]
        assert header.startswith(f"{settings.SESSION_COOKIE_NAME}=")
        assert "HttpOnly" in header
        assert "SameSite=lax" in header
        assert f"Max-Age={settings.SESSION_MAX_AGE_SECONDS}" in header
        assert "Path=/" in header
