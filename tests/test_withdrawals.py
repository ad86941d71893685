import datetime as dt
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from helpers import create_account, seed_app_settings
from rewards_api.core.settings import Settings
from rewards_api.models.ledger import LedgerEntry, LedgerEntryType
from rewards_api.models.withdrawal import WithdrawalMethod, WithdrawalRequest, WithdrawalStatus
from rewards_api.services.ledger import (
    AccountBanned,
    BelowMinimum,
    InsufficientBalance,
    InvalidTransition,
    MissingWalletAddress,
    StorageUnavailable,
    WithdrawalNotFound,
    WithdrawalWorkflow,
    get_ledger_event_bus,
)
from rewards_api.services.ledger.store import fetch_account


T0 = dt.datetime(2026, 3, 1, 12, 0, tzinfo=dt.timezone.utc)


@pytest.mark.asyncio
async def test_request_debits_balance_and_blocks_over_debit(session_factory) -> None:
    async with session_factory() as session:
        await seed_app_settings(session, min_withdraw_stars=20)
        account = await create_account(session, 2001, balance=100)
        workflow = WithdrawalWorkflow(session)

        request = await workflow.request_withdrawal(account.id, 70, WithdrawalMethod.STARS, now=T0)
        assert request.status == WithdrawalStatus.PENDING
        assert request.wallet_address is None

        with pytest.raises(InsufficientBalance):
            await workflow.request_withdrawal(account.id, 40, WithdrawalMethod.STARS, now=T0)

        refreshed = await fetch_account(session, account.id)
        assert refreshed.balance == 30
        requests = (await session.execute(select(WithdrawalRequest))).scalars().all()
        assert len(requests) == 1

        entry = (await session.execute(select(LedgerEntry))).scalar_one()
        assert entry.entry_type == LedgerEntryType.WITHDRAWAL_DEBIT
        assert entry.amount == -70
        assert entry.balance_after == 30
        assert entry.reference_id == str(request.id)


@pytest.mark.asyncio
async def test_request_validation_order(session_factory) -> None:
    async with session_factory() as session:
        await seed_app_settings(session, min_withdraw_ton=100)
        account = await create_account(session, 2002, balance=50)
        workflow = WithdrawalWorkflow(session)

        with pytest.raises(BelowMinimum) as excinfo:
            await workflow.request_withdrawal(account.id, 99, WithdrawalMethod.TON)
        assert excinfo.value.minimum == 100

        with pytest.raises(MissingWalletAddress):
            await workflow.request_withdrawal(account.id, 150, WithdrawalMethod.TON, "   ")

        with pytest.raises(InsufficientBalance):
            await workflow.request_withdrawal(account.id, 150, WithdrawalMethod.TON, "UQ-wallet")

        refreshed = await fetch_account(session, account.id)
        assert refreshed.balance == 50
        assert (await session.execute(select(WithdrawalRequest))).scalars().all() == []


@pytest.mark.asyncio
async def test_banned_account_cannot_request(session_factory) -> None:
    async with session_factory() as session:
        await seed_app_settings(session)
        account = await create_account(session, 2003, balance=500, banned=True)
        workflow = WithdrawalWorkflow(session)

        with pytest.raises(AccountBanned):
            await workflow.request_withdrawal(account.id, 100, WithdrawalMethod.STARS)


@pytest.mark.asyncio
async def test_reject_refunds_when_policy_enabled(session_factory) -> None:
    async with session_factory() as session:
        await seed_app_settings(session)
        account = await create_account(session, 2004, balance=200)
        workflow = WithdrawalWorkflow(session, config=Settings(withdrawal_refund_on_reject=True))

        request = await workflow.request_withdrawal(account.id, 150, WithdrawalMethod.TON, "UQ-wallet", now=T0)
        resolution = await workflow.resolve_withdrawal(
            request.id,
            WithdrawalStatus.REJECTED,
            processed_by="ops",
            note="wallet flagged",
            now=T0 + dt.timedelta(hours=1),
        )

        assert resolution.refunded_points == 150
        assert resolution.balance_after == 200
        assert resolution.request.status == WithdrawalStatus.REJECTED
        assert resolution.request.processed_by == "ops"
        assert resolution.request.note == "wallet flagged"
        assert resolution.request.processed_at is not None

        refreshed = await fetch_account(session, account.id)
        assert refreshed.balance == 200
        entry_types = (
            await session.execute(select(LedgerEntry.entry_type).order_by(LedgerEntry.created_at))
        ).scalars().all()
        assert entry_types == [LedgerEntryType.WITHDRAWAL_DEBIT, LedgerEntryType.WITHDRAWAL_REFUND]


@pytest.mark.asyncio
async def test_reject_keeps_debit_when_policy_disabled(session_factory) -> None:
    async with session_factory() as session:
        await seed_app_settings(session)
        account = await create_account(session, 2005, balance=200)
        workflow = WithdrawalWorkflow(session, config=Settings(withdrawal_refund_on_reject=False))

        request = await workflow.request_withdrawal(account.id, 150, WithdrawalMethod.STARS, now=T0)
        resolution = await workflow.resolve_withdrawal(request.id, WithdrawalStatus.REJECTED)

        assert resolution.refunded_points == 0
        assert resolution.request.status == WithdrawalStatus.REJECTED
        refreshed = await fetch_account(session, account.id)
        assert refreshed.balance == 50


@pytest.mark.asyncio
async def test_resolved_requests_are_terminal(session_factory) -> None:
    async with session_factory() as session:
        await seed_app_settings(session)
        account = await create_account(session, 2006, balance=300)
        workflow = WithdrawalWorkflow(session)

        request = await workflow.request_withdrawal(account.id, 100, WithdrawalMethod.STARS, now=T0)
        await workflow.resolve_withdrawal(request.id, WithdrawalStatus.APPROVED, processed_by="ops")

        for decision in (WithdrawalStatus.APPROVED, WithdrawalStatus.REJECTED):
            with pytest.raises(InvalidTransition) as excinfo:
                await workflow.resolve_withdrawal(request.id, decision)
            assert excinfo.value.current_status == WithdrawalStatus.APPROVED

        with pytest.raises(InvalidTransition):
            await workflow.resolve_withdrawal(request.id, WithdrawalStatus.PENDING)

        with pytest.raises(WithdrawalNotFound):
            await workflow.resolve_withdrawal(uuid4(), WithdrawalStatus.APPROVED)

        refreshed = await fetch_account(session, account.id)
        assert refreshed.balance == 200


@pytest.mark.asyncio
async def test_withdrawal_listings_newest_first(session_factory) -> None:
    async with session_factory() as session:
        await seed_app_settings(session)
        account = await create_account(session, 2007, balance=500)
        other = await create_account(session, 2008, balance=500)
        workflow = WithdrawalWorkflow(session)

        first = await workflow.request_withdrawal(account.id, 50, WithdrawalMethod.STARS, now=T0)
        second = await workflow.request_withdrawal(
            account.id, 60, WithdrawalMethod.STARS, now=T0 + dt.timedelta(minutes=5)
        )
        foreign = await workflow.request_withdrawal(
            other.id, 70, WithdrawalMethod.STARS, now=T0 + dt.timedelta(minutes=10)
        )
        await workflow.resolve_withdrawal(first.id, WithdrawalStatus.APPROVED)

        history = await workflow.list_account_withdrawals(account.id)
        assert [item.id for item in history] == [second.id, first.id]

        pending = await workflow.list_withdrawals(WithdrawalStatus.PENDING)
        assert [item.id for item in pending] == [foreign.id, second.id]

        everything = await workflow.list_withdrawals()
        assert len(everything) == 3


@pytest.mark.asyncio
async def test_every_resolution_publishes_ledger_event(session_factory) -> None:
    async with session_factory() as session:
        await seed_app_settings(session)
        account = await create_account(session, 2009, balance=500)
        workflow = WithdrawalWorkflow(session, config=Settings(withdrawal_refund_on_reject=False))
        refunding = WithdrawalWorkflow(session, config=Settings(withdrawal_refund_on_reject=True))

        approve_me = await workflow.request_withdrawal(account.id, 50, WithdrawalMethod.STARS, now=T0)
        reject_me = await workflow.request_withdrawal(account.id, 60, WithdrawalMethod.STARS, now=T0)
        refund_me = await workflow.request_withdrawal(account.id, 70, WithdrawalMethod.STARS, now=T0)

        async with get_ledger_event_bus().subscription() as queue:
            await workflow.resolve_withdrawal(approve_me.id, WithdrawalStatus.APPROVED)
            approved = [queue.get_nowait() for _ in range(queue.qsize())]

            await workflow.resolve_withdrawal(reject_me.id, WithdrawalStatus.REJECTED)
            rejected = [queue.get_nowait() for _ in range(queue.qsize())]

            await refunding.resolve_withdrawal(refund_me.id, WithdrawalStatus.REJECTED)
            refunded = [queue.get_nowait() for _ in range(queue.qsize())]

    assert [(event.kind, event.reference_id) for event in approved] == [
        ("withdrawal_approved", str(approve_me.id))
    ]
    assert [(event.kind, event.reference_id) for event in rejected] == [
        ("withdrawal_rejected", str(reject_me.id))
    ]
    assert [event.kind for event in refunded] == ["withdrawal_rejected", "withdrawal_refund"]
    assert refunded[1].balance == 500 - 50 - 60
    assert all(event.account_id == account.id for event in approved + rejected + refunded)


@pytest.mark.asyncio
async def test_storage_failure_leaves_no_partial_withdrawal_request(session_factory, monkeypatch) -> None:
    async with session_factory() as session:
        await seed_app_settings(session)
        account = await create_account(session, 2010, balance=300)
        workflow = WithdrawalWorkflow(session)

        async def failing_commit() -> None:
            raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(session, "commit", failing_commit)
        with pytest.raises(StorageUnavailable):
            await workflow.request_withdrawal(account.id, 120, WithdrawalMethod.TON, "UQ-wallet", now=T0)

    async with session_factory() as session:
        refreshed = await fetch_account(session, account.id)
        assert refreshed.balance == 300
        assert (await session.execute(select(WithdrawalRequest))).scalars().all() == []
        assert (await session.execute(select(LedgerEntry))).scalars().all() == []


@pytest.mark.asyncio
async def test_storage_failure_during_refunding_reject_keeps_request_pending(
    session_factory, monkeypatch
) -> None:
    async with session_factory() as session:
        await seed_app_settings(session)
        account = await create_account(session, 2011, balance=300)
        workflow = WithdrawalWorkflow(session, config=Settings(withdrawal_refund_on_reject=True))
        request = await workflow.request_withdrawal(account.id, 100, WithdrawalMethod.STARS, now=T0)

        async def failing_commit() -> None:
            raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(session, "commit", failing_commit)
        with pytest.raises(StorageUnavailable):
            await workflow.resolve_withdrawal(request.id, WithdrawalStatus.REJECTED, processed_by="ops")

    async with session_factory() as session:
        refreshed = await fetch_account(session, account.id)
        assert refreshed.balance == 200
        stored = (await session.execute(select(WithdrawalRequest))).scalar_one()
        assert stored.status == WithdrawalStatus.PENDING
        assert stored.processed_at is None
        entry_types = (await session.execute(select(LedgerEntry.entry_type))).scalars().all()
        assert entry_types == [LedgerEntryType.WITHDRAWAL_DEBIT]
