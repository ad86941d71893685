"""Account bootstrap, profile and audit-trail endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.api.errors import ledger_http_error
from rewards_api.db.session import get_session
from rewards_api.models.account import Account
from rewards_api.models.ledger import LedgerEntry, LedgerEntryType
from rewards_api.services.ledger import (
    AccountRegistry,
    AccountView,
    LedgerError,
    decode_ledger_cursor,
    encode_ledger_cursor,
)


router = APIRouter(prefix="/accounts", tags=["accounts"])


class AccountRegisterRequest(BaseModel):
    externalId: int = Field(..., gt=0, description="Platform user identifier")
    referralCode: Optional[str] = Field(None, max_length=64, description="Referral code from the start parameter")
    username: Optional[str] = Field(None, max_length=255)
    firstName: Optional[str] = Field(None, max_length=255)
    lastName: Optional[str] = Field(None, max_length=255)


class AccountResponse(BaseModel):
    id: UUID
    externalId: int
    username: Optional[str]
    firstName: Optional[str]
    lastName: Optional[str]
    balance: int
    referralCode: str
    referredById: Optional[UUID]
    banned: bool
    lastDailyClaimAt: Optional[datetime]
    lastAdClaimAt: Optional[datetime]
    createdAt: Optional[datetime]

    @classmethod
    def from_model(cls, account: Account) -> "AccountResponse":
        return cls(
            id=account.id,
            externalId=account.external_id,
            username=account.username,
            firstName=account.first_name,
            lastName=account.last_name,
            balance=account.balance,
            referralCode=account.referral_code,
            referredById=account.referred_by_id,
            banned=bool(account.banned),
            lastDailyClaimAt=account.last_daily_claim_at,
            lastAdClaimAt=account.last_ad_claim_at,
            createdAt=account.created_at,
        )


class AccountDetailResponse(AccountResponse):
    nextDailyClaimAt: Optional[datetime]
    nextAdClaimAt: Optional[datetime]

    @classmethod
    def from_view(cls, view: AccountView) -> "AccountDetailResponse":
        base = AccountResponse.from_model(view.account)
        return cls(
            **base.model_dump(),
            nextDailyClaimAt=view.next_daily_claim_at,
            nextAdClaimAt=view.next_ad_claim_at,
        )


class AccountRegisterResponse(BaseModel):
    account: AccountResponse
    created: bool
    referralPoints: int


class ReferralEntryResponse(BaseModel):
    id: UUID
    username: Optional[str]
    firstName: Optional[str]
    joinedAt: Optional[datetime]


class ReferralListResponse(BaseModel):
    referralCode: str
    referrals: List[ReferralEntryResponse]
    totalReferrals: int
    totalPoints: int


class LedgerEntryResponse(BaseModel):
    id: UUID
    entryType: str
    amount: int
    balanceAfter: int
    referenceId: Optional[str]
    metadata: dict[str, Any] = Field(default_factory=dict)
    createdAt: datetime

    @classmethod
    def from_model(cls, entry: LedgerEntry) -> "LedgerEntryResponse":
        return cls(
            id=entry.id,
            entryType=entry.entry_type.value,
            amount=entry.amount,
            balanceAfter=entry.balance_after,
            referenceId=entry.reference_id,
            metadata=entry.metadata_json or {},
            createdAt=entry.created_at,
        )


class LedgerWindowResponse(BaseModel):
    entries: List[LedgerEntryResponse]
    nextCursor: Optional[str]


@router.post("", response_model=AccountRegisterResponse)
async def register_account(
    payload: AccountRegisterRequest,
    response: Response,
    db: AsyncSession = Depends(get_session),
) -> AccountRegisterResponse:
    registry = AccountRegistry(db)
    try:
        result = await registry.register_account(
            payload.externalId,
            payload.referralCode,
            username=payload.username,
            first_name=payload.firstName,
            last_name=payload.lastName,
        )
    except LedgerError as error:
        raise ledger_http_error(error) from error

    response.status_code = status.HTTP_201_CREATED if result.created else status.HTTP_200_OK
    return AccountRegisterResponse(
        account=AccountResponse.from_model(result.account),
        created=result.created,
        referralPoints=result.referral_points,
    )


@router.get("/{account_id}", response_model=AccountDetailResponse)
async def get_account(account_id: UUID, db: AsyncSession = Depends(get_session)) -> AccountDetailResponse:
    registry = AccountRegistry(db)
    try:
        view = await registry.get_account(account_id)
    except LedgerError as error:
        raise ledger_http_error(error) from error
    return AccountDetailResponse.from_view(view)


@router.get("/{account_id}/referrals", response_model=ReferralListResponse)
async def list_referrals(account_id: UUID, db: AsyncSession = Depends(get_session)) -> ReferralListResponse:
    registry = AccountRegistry(db)
    try:
        view = await registry.get_account(account_id)
        summary = await registry.list_referrals(account_id)
    except LedgerError as error:
        raise ledger_http_error(error) from error

    return ReferralListResponse(
        referralCode=view.account.referral_code,
        referrals=[
            ReferralEntryResponse(
                id=referral.id,
                username=referral.username,
                firstName=referral.first_name,
                joinedAt=referral.created_at,
            )
            for referral in summary.referrals
        ],
        totalReferrals=len(summary.referrals),
        totalPoints=summary.total_points,
    )


@router.get("/{account_id}/ledger", response_model=LedgerWindowResponse)
async def list_ledger(
    account_id: UUID,
    limit: int = Query(25, ge=1, le=100),
    cursor: Optional[str] = Query(None),
    types: Optional[List[str]] = Query(None),
    db: AsyncSession = Depends(get_session),
) -> LedgerWindowResponse:
    entry_types: list[LedgerEntryType] | None = None
    if types:
        entry_types = []
        for value in types:
            try:
                entry_types.append(LedgerEntryType(value))
            except ValueError as exc:
                raise HTTPException(status_code=400, detail=f"Unsupported ledger type: {value}") from exc

    decoded_cursor = None
    if cursor:
        try:
            decoded_cursor = decode_ledger_cursor(cursor)
        except (ValueError, UnicodeDecodeError) as exc:
            raise HTTPException(status_code=400, detail="Invalid ledger cursor") from exc

    registry = AccountRegistry(db)
    try:
        entries, next_cursor = await registry.list_ledger(
            account_id,
            limit=limit,
            cursor=decoded_cursor,
            entry_types=entry_types,
        )
    except LedgerError as error:
        raise ledger_http_error(error) from error

    return LedgerWindowResponse(
        entries=[LedgerEntryResponse.from_model(entry) for entry in entries],
        nextCursor=encode_ledger_cursor(*next_cursor) if next_cursor else None,
    )
