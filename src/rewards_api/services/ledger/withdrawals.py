"""Withdrawal request state machine with debit-on-request semantics."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rewards_api.core.settings import Settings, settings as default_settings
from rewards_api.models.ledger import LedgerEntryType
from rewards_api.models.withdrawal import WithdrawalMethod, WithdrawalRequest, WithdrawalStatus
from rewards_api.observability.ledger import get_ledger_store

from .errors import (
    AccountBanned,
    AccountNotFound,
    BelowMinimum,
    InsufficientBalance,
    InvalidTransition,
    MissingWalletAddress,
    WithdrawalNotFound,
)
from .events import LedgerChanged, LedgerEventBus, get_ledger_event_bus
from .snapshot import load_settings_snapshot
from .store import (
    append_ledger_entry,
    debit_balance,
    fetch_account,
    refund_balance,
    unit_of_work,
    utcnow,
)


@dataclass(slots=True)
class WithdrawalResolution:
    """Result of an operator decision on a pending request."""

    request: WithdrawalRequest
    refunded_points: int = 0
    balance_after: int | None = None


class WithdrawalWorkflow:
    """Moves withdrawal requests from pending to a terminal decision."""

    _ALLOWED_DECISIONS: frozenset[WithdrawalStatus] = frozenset(
        {WithdrawalStatus.APPROVED, WithdrawalStatus.REJECTED}
    )

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        config: Settings | None = None,
        event_bus: LedgerEventBus | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._db = db_session
        self._config = config or default_settings
        self._events = event_bus or get_ledger_event_bus()
        self._clock = clock

    async def request_withdrawal(
        self,
        account_id: UUID,
        amount: int,
        method: WithdrawalMethod,
        wallet_address: str | None = None,
        *,
        now: datetime | None = None,
    ) -> WithdrawalRequest:
        """Validate, debit and persist a pending request in one transaction."""

        now = now or self._clock()
        wallet_address = (wallet_address or "").strip() or None
        store = get_ledger_store()

        async with unit_of_work(self._db, operation="request_withdrawal"):
            snapshot = await load_settings_snapshot(self._db, config=self._config)
            minimum = snapshot.min_withdraw_for(method)
            if amount <= 0 or amount < minimum:
                store.record_withdrawal("below_minimum")
                raise BelowMinimum(method, amount, minimum)
            if method.requires_wallet_address and wallet_address is None:
                raise MissingWalletAddress(method)

            new_balance = await debit_balance(self._db, account_id, amount)
            if new_balance is None:
                account = await fetch_account(self._db, account_id)
                if account is None:
                    raise AccountNotFound(account_id)
                if account.banned:
                    raise AccountBanned(account_id)
                store.record_withdrawal("insufficient_balance")
                raise InsufficientBalance(account_id, amount)

            request = WithdrawalRequest(
                account_id=account_id,
                amount=amount,
                method=method,
                wallet_address=wallet_address,
                status=WithdrawalStatus.PENDING,
                created_at=now,
            )
            self._db.add(request)
            await self._db.flush()

            append_ledger_entry(
                self._db,
                account_id=account_id,
                entry_type=LedgerEntryType.WITHDRAWAL_DEBIT,
                amount=-amount,
                balance_after=new_balance,
                reference_id=str(request.id),
                metadata={"method": method.value, "settingsVersion": snapshot.version},
                created_at=now,
            )

        store.record_withdrawal("requested", amount)
        logger.info(
            "Withdrawal requested",
            account_id=str(account_id),
            request_id=str(request.id),
            amount=amount,
            method=method.value,
        )
        self._events.publish(
            LedgerChanged(
                account_id=account_id,
                kind=LedgerEntryType.WITHDRAWAL_DEBIT.value,
                balance=new_balance,
                reference_id=str(request.id),
                occurred_at=now,
            )
        )
        return request

    async def resolve_withdrawal(
        self,
        request_id: UUID,
        decision: WithdrawalStatus,
        processed_by: str | None = None,
        note: str | None = None,
        *,
        now: datetime | None = None,
    ) -> WithdrawalResolution:
        """Approve or reject a pending request; terminal requests are immutable."""

        if decision not in self._ALLOWED_DECISIONS:
            raise InvalidTransition(WithdrawalStatus.PENDING, decision)

        now = now or self._clock()
        refund_points = 0
        balance_after: int | None = None

        async with unit_of_work(self._db, operation="resolve_withdrawal"):
            stmt = (
                update(WithdrawalRequest)
                .where(
                    WithdrawalRequest.id == request_id,
                    WithdrawalRequest.status == WithdrawalStatus.PENDING,
                )
                .values(status=decision, processed_at=now, processed_by=processed_by, note=note)
                .returning(WithdrawalRequest.account_id, WithdrawalRequest.amount)
                .execution_options(synchronize_session=False)
            )
            row = (await self._db.execute(stmt)).one_or_none()
            if row is None:
                current = await self._db.execute(
                    select(WithdrawalRequest.status).where(WithdrawalRequest.id == request_id)
                )
                current_status = current.scalar_one_or_none()
                if current_status is None:
                    raise WithdrawalNotFound(request_id)
                get_ledger_store().record_withdrawal("invalid_transition")
                raise InvalidTransition(WithdrawalStatus(current_status), decision)

            account_id, amount = row
            if decision is WithdrawalStatus.REJECTED and self._config.withdrawal_refund_on_reject:
                balance_after = await refund_balance(self._db, account_id, amount)
                if balance_after is None:
                    raise AccountNotFound(account_id)
                refund_points = amount
                append_ledger_entry(
                    self._db,
                    account_id=account_id,
                    entry_type=LedgerEntryType.WITHDRAWAL_REFUND,
                    amount=amount,
                    balance_after=balance_after,
                    reference_id=str(request_id),
                    metadata={"processedBy": processed_by} if processed_by else None,
                    created_at=now,
                )

        request = await self._load_request(request_id)
        store = get_ledger_store()
        store.record_withdrawal(decision.value)
        if refund_points:
            store.record_withdrawal("refunded", refund_points)
        logger.info(
            "Withdrawal resolved",
            request_id=str(request_id),
            status=decision.value,
            processed_by=processed_by,
            refunded=refund_points,
        )
        self._events.publish(
            LedgerChanged(
                account_id=account_id,
                kind=f"withdrawal_{decision.value}",
                reference_id=str(request_id),
                occurred_at=now,
            )
        )
        if refund_points:
            self._events.publish(
                LedgerChanged(
                    account_id=account_id,
                    kind=LedgerEntryType.WITHDRAWAL_REFUND.value,
                    balance=balance_after,
                    reference_id=str(request_id),
                    occurred_at=now,
                )
            )
        return WithdrawalResolution(request=request, refunded_points=refund_points, balance_after=balance_after)

    async def list_account_withdrawals(self, account_id: UUID) -> Sequence[WithdrawalRequest]:
        """Return an account's withdrawal history, newest first."""

        if await fetch_account(self._db, account_id) is None:
            raise AccountNotFound(account_id)
        stmt = (
            select(WithdrawalRequest)
            .where(WithdrawalRequest.account_id == account_id)
            .order_by(WithdrawalRequest.created_at.desc())
        )
        result = await self._db.execute(stmt)
        return result.scalars().all()

    async def list_withdrawals(
        self,
        status: WithdrawalStatus | None = None,
        *,
        limit: int | None = None,
    ) -> Sequence[WithdrawalRequest]:
        """Admin listing with each request's account loaded for display."""

        stmt = (
            select(WithdrawalRequest)
            .options(selectinload(WithdrawalRequest.account))
            .order_by(WithdrawalRequest.created_at.desc())
        )
        if status is not None:
            stmt = stmt.where(WithdrawalRequest.status == status)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._db.execute(stmt)
        return result.scalars().all()

    async def _load_request(self, request_id: UUID) -> WithdrawalRequest:
        stmt = (
            select(WithdrawalRequest)
            .where(WithdrawalRequest.id == request_id)
            .execution_options(populate_existing=True)
        )
        result = await self._db.execute(stmt)
        return result.scalar_one()


__all__ = ["WithdrawalResolution", "WithdrawalWorkflow"]
