import logging
from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.exceptions import ServiceUnavailableError

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    status: Literal["ok", "error"] = Field(..., description="The status of the health check")
    database: Literal["ok", "error"] = Field("ok", description="Database round-trip status")


@router.get("/health", tags=["health"], response_model=HealthResponse)
async def health(db: AsyncSession = Depends(get_session)):
    try:
        result = await db.execute(select(text("1")))
        result.scalar_one()
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        raise ServiceUnavailableError(detail="Database is unreachable") from None

    return HealthResponse(status="ok", database="ok")
