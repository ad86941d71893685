"""Operator endpoints for withdrawal moderation and account management."""

from __future__ import annotations

from typing import List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.api.dependencies.security import require_admin_api_key
from rewards_api.api.errors import ledger_http_error
from rewards_api.api.v1.endpoints.accounts import AccountResponse
from rewards_api.api.v1.endpoints.withdrawals import WithdrawalResponse
from rewards_api.db.session import get_session
from rewards_api.models.withdrawal import WithdrawalRequest, WithdrawalStatus
from rewards_api.services.ledger import AccountRegistry, LedgerError, WithdrawalWorkflow


router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin_api_key)],
)


class AdminWithdrawalResponse(WithdrawalResponse):
    accountExternalId: Optional[int]
    accountUsername: Optional[str]
    accountFirstName: Optional[str]

    @classmethod
    def from_request(cls, request: WithdrawalRequest) -> "AdminWithdrawalResponse":
        account = request.account
        return cls(
            **WithdrawalResponse.from_model(request).model_dump(),
            accountExternalId=account.external_id if account is not None else None,
            accountUsername=account.username if account is not None else None,
            accountFirstName=account.first_name if account is not None else None,
        )


class WithdrawalResolveRequest(BaseModel):
    decision: Literal["approved", "rejected"] = Field(..., description="Terminal status to apply")
    processedBy: Optional[str] = Field(None, max_length=255, description="Operator label")
    note: Optional[str] = Field(None, max_length=2000)


class WithdrawalResolveResponse(BaseModel):
    withdrawal: WithdrawalResponse
    refundedPoints: int
    balanceAfter: Optional[int]


class BanRequest(BaseModel):
    banned: bool = Field(..., description="True to ban, false to lift the ban")


class DashboardStatsResponse(BaseModel):
    totalAccounts: int
    bannedAccounts: int
    totalPoints: int
    pendingWithdrawals: int
    activeTasks: int


@router.get("/accounts", response_model=List[AccountResponse])
async def list_accounts(
    banned: Optional[bool] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_session),
) -> List[AccountResponse]:
    registry = AccountRegistry(db)
    accounts = await registry.list_accounts(limit, banned=banned)
    return [AccountResponse.from_model(account) for account in accounts]


@router.get("/withdrawals", response_model=List[AdminWithdrawalResponse])
async def list_withdrawals(
    status_filter: Optional[WithdrawalStatus] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_session),
) -> List[AdminWithdrawalResponse]:
    workflow = WithdrawalWorkflow(db)
    requests = await workflow.list_withdrawals(status_filter, limit=limit)
    return [AdminWithdrawalResponse.from_request(request) for request in requests]


@router.post("/withdrawals/{request_id}/resolve", response_model=WithdrawalResolveResponse)
async def resolve_withdrawal(
    request_id: UUID,
    payload: WithdrawalResolveRequest,
    db: AsyncSession = Depends(get_session),
) -> WithdrawalResolveResponse:
    workflow = WithdrawalWorkflow(db)
    try:
        resolution = await workflow.resolve_withdrawal(
            request_id,
            WithdrawalStatus(payload.decision),
            processed_by=payload.processedBy,
            note=payload.note,
        )
    except LedgerError as error:
        raise ledger_http_error(error) from error

    return WithdrawalResolveResponse(
        withdrawal=WithdrawalResponse.from_model(resolution.request),
        refundedPoints=resolution.refunded_points,
        balanceAfter=resolution.balance_after,
    )


@router.post("/accounts/{account_id}/ban", response_model=AccountResponse)
async def set_account_ban(
    account_id: UUID,
    payload: BanRequest,
    db: AsyncSession = Depends(get_session),
) -> AccountResponse:
    registry = AccountRegistry(db)
    try:
        account = await registry.set_banned(account_id, payload.banned)
    except LedgerError as error:
        raise ledger_http_error(error) from error
    return AccountResponse.from_model(account)


@router.get("/stats", response_model=DashboardStatsResponse)
async def dashboard_stats(db: AsyncSession = Depends(get_session)) -> DashboardStatsResponse:
    registry = AccountRegistry(db)
    stats = await registry.dashboard_stats()
    logger.debug("Served dashboard stats", **stats.as_dict())
    return DashboardStatsResponse(**stats.as_dict())
