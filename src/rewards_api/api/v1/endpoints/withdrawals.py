"""Member-facing withdrawal endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.api.errors import ledger_http_error
from rewards_api.db.session import get_session
from rewards_api.models.withdrawal import WithdrawalMethod, WithdrawalRequest
from rewards_api.services.ledger import LedgerError, WithdrawalWorkflow


router = APIRouter(prefix="/accounts/{account_id}/withdrawals", tags=["withdrawals"])


class WithdrawalCreateRequest(BaseModel):
    amount: int = Field(..., gt=0, description="Points to withdraw")
    method: WithdrawalMethod = Field(..., description="Payout rail")
    walletAddress: Optional[str] = Field(None, max_length=255, description="Destination wallet for TON payouts")


class WithdrawalCreatedResponse(BaseModel):
    requestId: UUID
    status: str


class WithdrawalResponse(BaseModel):
    id: UUID
    accountId: UUID
    amount: int
    method: str
    walletAddress: Optional[str]
    status: str
    createdAt: Optional[datetime]
    processedAt: Optional[datetime]
    processedBy: Optional[str]
    note: Optional[str]

    @classmethod
    def from_model(cls, request: WithdrawalRequest) -> "WithdrawalResponse":
        return cls(
            id=request.id,
            accountId=request.account_id,
            amount=request.amount,
            method=request.method.value,
            walletAddress=request.wallet_address,
            status=request.status.value,
            createdAt=request.created_at,
            processedAt=request.processed_at,
            processedBy=request.processed_by,
            note=request.note,
        )


@router.post("", response_model=WithdrawalCreatedResponse, status_code=status.HTTP_201_CREATED)
async def request_withdrawal(
    account_id: UUID,
    payload: WithdrawalCreateRequest,
    db: AsyncSession = Depends(get_session),
) -> WithdrawalCreatedResponse:
    workflow = WithdrawalWorkflow(db)
    try:
        request = await workflow.request_withdrawal(
            account_id,
            payload.amount,
            payload.method,
            payload.walletAddress,
        )
    except LedgerError as error:
        raise ledger_http_error(error) from error
    return WithdrawalCreatedResponse(requestId=request.id, status=request.status.value)


@router.get("", response_model=List[WithdrawalResponse])
async def list_account_withdrawals(
    account_id: UUID,
    db: AsyncSession = Depends(get_session),
) -> List[WithdrawalResponse]:
    workflow = WithdrawalWorkflow(db)
    try:
        requests = await workflow.list_account_withdrawals(account_id)
    except LedgerError as error:
        raise ledger_http_error(error) from error
    return [WithdrawalResponse.from_model(request) for request in requests]
