"""Résultats structurés des gardes d'accès.

Les gardes (passerelle d'identité, scope tenant, contrôle de rôle, facade
AccessGuard) ne lèvent pas d'exception: elles retournent `Granted` ou
`Denied`. L'appelant choisit de renvoyer `denied.response` directement ou
de lever `denied.error` à la frontière FastAPI.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from opentelemetry import metrics

from app.core.exceptions import RFC9457Exception

T = TypeVar("T")

meter = metrics.get_meter("core-clinic-access.guards")

access_denials_counter = meter.create_counter(
    name="access_denials_total",
    description="Total number of requests denied by access guards",
    unit="1",
)


@dataclass(frozen=True)
class Granted(Generic[T]):
    value: T


@dataclass(frozen=True)
class Denied:
    error: RFC9457Exception

    @property
    def status_code(self) -> int:
        return self.error.status_code

    @property
    def response(self) -> JSONResponse:
        """Réponse 4xx Problem Details prête à être renvoyée par un handler."""
        return JSONResponse(
            status_code=self.error.status_code,
            content=jsonable_encoder(self.error.problem_detail.model_dump(exclude_none=True)),
            media_type="application/problem+json",
        )


GuardResult = Granted[T] | Denied


def deny(error: RFC9457Exception, reason: str) -> Denied:
    """Construit un refus et le compte dans les métriques."""
    access_denials_counter.add(1, {"reason": reason, "status": error.status_code})
    return Denied(error=error)
