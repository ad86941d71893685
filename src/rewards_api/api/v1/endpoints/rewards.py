"""Claim and task endpoints for mini-app members."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.api.errors import ledger_http_error
from rewards_api.db.session import get_session
from rewards_api.services.ledger import ClaimResult, LedgerError, RewardClaimEngine


router = APIRouter(prefix="/accounts/{account_id}", tags=["rewards"])


class AdClaimRequest(BaseModel):
    adDisplayFailed: bool = Field(False, description="Set when the ad collaborator reported a display failure")


class ClaimResponse(BaseModel):
    newBalance: int
    awardedPoints: int
    claimedAt: datetime

    @classmethod
    def from_result(cls, result: ClaimResult) -> "ClaimResponse":
        return cls(
            newBalance=result.new_balance,
            awardedPoints=result.awarded_points,
            claimedAt=result.claimed_at,
        )


class TaskResponse(BaseModel):
    id: UUID
    title: str
    description: Optional[str]
    url: Optional[str]
    rewardPoints: int
    completed: bool


@router.post("/claims/daily", response_model=ClaimResponse)
async def claim_daily(account_id: UUID, db: AsyncSession = Depends(get_session)) -> ClaimResponse:
    engine = RewardClaimEngine(db)
    try:
        result = await engine.claim_daily(account_id)
    except LedgerError as error:
        raise ledger_http_error(error) from error
    return ClaimResponse.from_result(result)


@router.post("/claims/ad", response_model=ClaimResponse)
async def claim_ad(
    account_id: UUID,
    payload: Optional[AdClaimRequest] = None,
    db: AsyncSession = Depends(get_session),
) -> ClaimResponse:
    engine = RewardClaimEngine(db)
    try:
        result = await engine.claim_ad(
            account_id,
            ad_display_failed=payload.adDisplayFailed if payload else False,
        )
    except LedgerError as error:
        raise ledger_http_error(error) from error
    return ClaimResponse.from_result(result)


@router.get("/tasks", response_model=List[TaskResponse])
async def list_tasks(account_id: UUID, db: AsyncSession = Depends(get_session)) -> List[TaskResponse]:
    engine = RewardClaimEngine(db)
    try:
        tasks = await engine.list_tasks(account_id)
    except LedgerError as error:
        raise ledger_http_error(error) from error
    return [
        TaskResponse(
            id=task.id,
            title=task.title,
            description=task.description,
            url=task.url,
            rewardPoints=task.reward_points,
            completed=task.completed,
        )
        for task in tasks
    ]


@router.post("/tasks/{task_id}/complete", response_model=ClaimResponse)
async def complete_task(
    account_id: UUID,
    task_id: UUID,
    db: AsyncSession = Depends(get_session),
) -> ClaimResponse:
    engine = RewardClaimEngine(db)
    try:
        result = await engine.complete_task(account_id, task_id)
    except LedgerError as error:
        raise ledger_http_error(error) from error
    return ClaimResponse.from_result(result)
