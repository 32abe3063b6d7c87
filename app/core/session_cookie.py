"""Cookie de session signé des role users.

Le descripteur de session est transporté côté client dans une enveloppe
authentifiée par HMAC-SHA256:

    <payload base64url>.<timestamp d'émission>.<signature hex>

avec signature = HMAC(SESSION_SECRET, "<timestamp>." + payload). Toute
altération, signature invalide ou enveloppe expirée est traitée comme une
absence de cookie.
"""

import base64
import binascii
import hashlib
import hmac
import logging
import time

from fastapi import Request, Response
from pydantic import ValidationError as PydanticValidationError

from app.core.config import settings
from app.schemas.session import SessionDescriptor

logger = logging.getLogger(__name__)

# Tolérance d'horloge pour un timestamp d'émission dans le futur
CLOCK_SKEW_SECONDS = 60


def compute_signature(payload: bytes, secret: str, timestamp: str) -> str:
    """
    Calcule la signature HMAC-SHA256 d'un payload de session.

    Args:
        payload: Descripteur sérialisé et encodé base64url
        secret: Clé de signature des sessions
        timestamp: Timestamp d'émission (secondes Unix)

    Returns:
        Signature hexadécimale (64 caractères)
    """
    signed_payload = f"{timestamp}.".encode() + payload
    return hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()


def encode_session(
    descriptor: SessionDescriptor,
    secret: str | None = None,
    now: float | None = None,
) -> str:
    """Sérialise et signe un descripteur de session pour le cookie."""
    secret = secret or settings.SESSION_SECRET
    timestamp = str(int(now if now is not None else time.time()))
    raw = descriptor.model_dump_json(by_alias=True).encode("utf-8")
    payload = base64.urlsafe_b64encode(raw).rstrip(b"=")
    signature = compute_signature(payload, secret, timestamp)
    return f"{payload.decode('ascii')}.{timestamp}.{signature}"


def decode_session(
    value: str,
    secret: str | None = None,
    max_age: int | None = None,
    now: float | None = None,
) -> SessionDescriptor | None:
    """
    Vérifie et décode une valeur de cookie de session.

    Returns:
        Le descripteur, ou None si la valeur est malformée, altérée ou expirée
    """
    secret = secret or settings.SESSION_SECRET
    max_age = max_age if max_age is not None else settings.SESSION_MAX_AGE_SECONDS
    current = now if now is not None else time.time()

    parts = value.split(".")
    if len(parts) != 3:
        logger.warning("Cookie de session malformé")
        return None
    payload, timestamp, signature = parts

    try:
        issued_at = int(timestamp)
    except ValueError:
        logger.warning(f"Timestamp de session invalide: {timestamp}")
        return None

    expected_signature = compute_signature(payload.encode("ascii", "ignore"), secret, timestamp)
    if not hmac.compare_digest(signature.lower().encode("utf-8"), expected_signature.encode()):
        logger.warning("Signature de session invalide")
        return None

    if current - issued_at > max_age:
        logger.info(f"Session expirée (émise il y a {int(current - issued_at)}s)")
        return None
    if issued_at > current + CLOCK_SKEW_SECONDS:
        logger.warning(f"Session avec timestamp dans le futur: {timestamp}")
        return None

    try:
        padding = "=" * (-len(payload) % 4)
        raw = base64.urlsafe_b64decode(payload + padding)
        return SessionDescriptor.model_validate_json(raw)
    except (binascii.Error, ValueError, PydanticValidationError) as e:
        logger.error(f"Payload de session signé mais illisible: {e}")
        return None


def read_session(request: Request) -> SessionDescriptor | None:
    """Lit le descripteur depuis le cookie de la requête (None si absent ou invalide)."""
    value = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not value:
        return None
    return decode_session(value)


def set_session_cookie(response: Response, descriptor: SessionDescriptor) -> None:
    """Pose le cookie de session (httpOnly, sameSite=lax, secure en production, 7 jours)."""
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=encode_session(descriptor),
        max_age=settings.SESSION_MAX_AGE_SECONDS,
        path="/",
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )


def clear_session_cookie(response: Response) -> None:
    """Supprime le cookie de session. Sans effet si le client n'en a pas."""
    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )
