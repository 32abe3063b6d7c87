"""Retry avec backoff exponentiel pour les appels au fournisseur d'identité.

Les erreurs de connexion Keycloak sont transitoires (redémarrage, réseau);
elles sont retentées avant d'être converties en 503. Les refus
d'authentification ne sont jamais retentés.
"""

import logging
from collections.abc import Callable
from typing import Any

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)


def async_retry_with_backoff(
    max_attempts: int = 3,
    min_wait_seconds: float = 0.5,
    max_wait_seconds: float = 5,
    exceptions: tuple[type[Exception], ...] = (Exception,),
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Décorateur de retry (async) limité aux exceptions listées.

    Args:
        max_attempts: Nombre maximum de tentatives
        min_wait_seconds: Attente minimale entre tentatives
        max_wait_seconds: Attente maximale entre tentatives
        exceptions: Exceptions déclenchant un retry; les autres remontent immédiatement

    Example:
        ```python
        @async_retry_with_backoff(exceptions=(KeycloakConnectionError,))
        async def _password_grant(self, email: str, password: str) -> dict:
            return await self._openid.a_token(username=email, password=password)
        ```
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        return retry(
            retry=retry_if_exception_type(exceptions),
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(min=min_wait_seconds, max=max_wait_seconds),
            before_sleep=_log_retry_attempt,
            reraise=True,
        )(func)

    return decorator


def _log_retry_attempt(retry_state: Any) -> None:
    """Trace chaque nouvelle tentative avec l'exception qui l'a provoquée."""
    exception = retry_state.outcome.exception()
    logger.warning(
        f"Retry attempt {retry_state.attempt_number} for {retry_state.fn.__name__} "
        f"after {retry_state.seconds_since_start:.2f}s - Exception: {exception}"
    )
