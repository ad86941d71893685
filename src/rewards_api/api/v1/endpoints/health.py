from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Literal

from fastapi import APIRouter, Depends
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.db.session import get_session
from rewards_api.services.ledger import load_settings_snapshot


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "degraded", "error"]
    detail: str | None = Field(default=None, description="Human readable status detail")
    last_error_at: str | None = Field(default=None, description="ISO timestamp of most recent error")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(session: AsyncSession = Depends(get_session)) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}

    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as error:
        logger.warning("Database readiness probe failed", error=str(error))
        components["database"] = ComponentStatus(
            status="error",
            detail="Database unreachable",
            last_error_at=datetime.now(timezone.utc).isoformat(),
        )
        return ReadinessPayload(status="error", components=components)

    components["database"] = ComponentStatus(status="ready")

    try:
        snapshot = await load_settings_snapshot(session)
    except SQLAlchemyError as error:
        logger.warning("Reward settings probe failed", error=str(error))
        components["reward_settings"] = ComponentStatus(
            status="error",
            detail="Reward settings unreadable",
            last_error_at=datetime.now(timezone.utc).isoformat(),
        )
        return ReadinessPayload(status="error", components=components)

    if snapshot.version == 0:
        components["reward_settings"] = ComponentStatus(
            status="degraded",
            detail="Settings row missing; serving configuration defaults",
        )
        return ReadinessPayload(status="degraded", components=components)

    components["reward_settings"] = ComponentStatus(
        status="ready",
        detail=f"Settings version {snapshot.version}",
    )
    return ReadinessPayload(status="ready", components=components)
