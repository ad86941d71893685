"""Races between independent sessions against a shared on-disk database."""

import asyncio
import datetime as dt

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from helpers import create_account, create_task, seed_app_settings
from rewards_api.db.base import Base
from rewards_api.models.ledger import LedgerEntry, LedgerEntryType
from rewards_api.models.task import TaskCompletion
from rewards_api.models.withdrawal import WithdrawalMethod, WithdrawalRequest, WithdrawalStatus
from rewards_api.services.ledger import (
    AlreadyCompleted,
    CooldownActive,
    InsufficientBalance,
    InvalidTransition,
    RewardClaimEngine,
    WithdrawalWorkflow,
)
from rewards_api.services.ledger.store import fetch_account


T0 = dt.datetime(2026, 3, 1, 12, 0, tzinfo=dt.timezone.utc)
PARALLELISM = 6


@pytest_asyncio.fixture
async def shared_session_factory(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


async def _gather_in_sessions(factory, operation):
    async def run_one():
        async with factory() as session:
            return await operation(session)

    return await asyncio.gather(*(run_one() for _ in range(PARALLELISM)), return_exceptions=True)


async def _count(factory, stmt) -> int:
    async with factory() as session:
        return int((await session.execute(stmt)).scalar_one())


@pytest.mark.asyncio
async def test_parallel_daily_claims_pay_once(shared_session_factory) -> None:
    async with shared_session_factory() as session:
        await seed_app_settings(session, daily_reward_points=10)
        account = await create_account(session, 5001)

    outcomes = await _gather_in_sessions(
        shared_session_factory,
        lambda session: RewardClaimEngine(session).claim_daily(account.id, now=T0),
    )

    successes = [outcome for outcome in outcomes if not isinstance(outcome, BaseException)]
    rejections = [outcome for outcome in outcomes if isinstance(outcome, CooldownActive)]
    assert len(successes) == 1
    assert len(rejections) == PARALLELISM - 1

    async with shared_session_factory() as session:
        refreshed = await fetch_account(session, account.id)
        assert refreshed.balance == 10
    entries = await _count(shared_session_factory, select(func.count(LedgerEntry.id)))
    assert entries == 1


@pytest.mark.asyncio
async def test_parallel_withdrawals_never_overdraw(shared_session_factory) -> None:
    async with shared_session_factory() as session:
        await seed_app_settings(session, min_withdraw_stars=20)
        account = await create_account(session, 5002, balance=100)

    outcomes = await _gather_in_sessions(
        shared_session_factory,
        lambda session: WithdrawalWorkflow(session).request_withdrawal(
            account.id, 60, WithdrawalMethod.STARS, now=T0
        ),
    )

    successes = [outcome for outcome in outcomes if isinstance(outcome, WithdrawalRequest)]
    rejections = [outcome for outcome in outcomes if isinstance(outcome, InsufficientBalance)]
    assert len(successes) == 1
    assert len(rejections) == PARALLELISM - 1

    async with shared_session_factory() as session:
        refreshed = await fetch_account(session, account.id)
        assert refreshed.balance == 40
    requests = await _count(shared_session_factory, select(func.count(WithdrawalRequest.id)))
    debits = await _count(
        shared_session_factory,
        select(func.count(LedgerEntry.id)).where(LedgerEntry.entry_type == LedgerEntryType.WITHDRAWAL_DEBIT),
    )
    assert requests == 1
    assert debits == 1


@pytest.mark.asyncio
async def test_parallel_resolutions_apply_one_transition(shared_session_factory) -> None:
    async with shared_session_factory() as session:
        await seed_app_settings(session)
        account = await create_account(session, 5003, balance=300)
        request = await WithdrawalWorkflow(session).request_withdrawal(
            account.id, 100, WithdrawalMethod.STARS, now=T0
        )

    outcomes = await _gather_in_sessions(
        shared_session_factory,
        lambda session: WithdrawalWorkflow(session).resolve_withdrawal(request.id, WithdrawalStatus.REJECTED),
    )

    successes = [outcome for outcome in outcomes if not isinstance(outcome, BaseException)]
    conflicts = [outcome for outcome in outcomes if isinstance(outcome, InvalidTransition)]
    assert len(successes) == 1
    assert len(conflicts) == PARALLELISM - 1

    async with shared_session_factory() as session:
        refreshed = await fetch_account(session, account.id)
        assert refreshed.balance == 300
    refunds = await _count(
        shared_session_factory,
        select(func.count(LedgerEntry.id)).where(LedgerEntry.entry_type == LedgerEntryType.WITHDRAWAL_REFUND),
    )
    assert refunds == 1


@pytest.mark.asyncio
async def test_parallel_task_completions_pay_once(shared_session_factory) -> None:
    async with shared_session_factory() as session:
        await seed_app_settings(session)
        account = await create_account(session, 5004)
        task = await create_task(session, reward_points=30)

    outcomes = await _gather_in_sessions(
        shared_session_factory,
        lambda session: RewardClaimEngine(session).complete_task(account.id, task.id, now=T0),
    )

    successes = [outcome for outcome in outcomes if not isinstance(outcome, BaseException)]
    duplicates = [outcome for outcome in outcomes if isinstance(outcome, AlreadyCompleted)]
    assert len(successes) == 1
    assert len(duplicates) == PARALLELISM - 1

    async with shared_session_factory() as session:
        refreshed = await fetch_account(session, account.id)
        assert refreshed.balance == 30
    completions = await _count(shared_session_factory, select(func.count(TaskCompletion.id)))
    assert completions == 1
