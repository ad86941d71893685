import datetime as dt
from uuid import uuid4

import pytest
from sqlalchemy import select

from helpers import create_account, create_task, seed_app_settings
from rewards_api.models.account import Account
from rewards_api.models.ledger import LedgerEntry, LedgerEntryType
from rewards_api.models.withdrawal import WithdrawalMethod
from rewards_api.services.ledger import (
    AccountBanned,
    AccountNotFound,
    AccountRegistry,
    RewardClaimEngine,
    WithdrawalWorkflow,
    decode_ledger_cursor,
    encode_ledger_cursor,
)
from rewards_api.services.ledger.store import fetch_account


T0 = dt.datetime(2026, 3, 1, 12, 0, tzinfo=dt.timezone.utc)


@pytest.mark.asyncio
async def test_valid_referral_code_credits_referrer(session_factory) -> None:
    async with session_factory() as session:
        await seed_app_settings(session, referral_reward_points=50)
        registry = AccountRegistry(session)

        referrer = (await registry.register_account(3001, username="alice")).account
        assert len(referrer.referral_code) == 8
        assert referrer.referral_code == referrer.referral_code.upper()

        result = await registry.register_account(3002, referrer.referral_code.lower(), username="bob", now=T0)
        assert result.created is True
        assert result.referrer_id == referrer.id
        assert result.referral_points == 50
        assert result.account.referred_by_id == referrer.id
        assert result.account.balance == 0

        refreshed = await fetch_account(session, referrer.id)
        assert refreshed.balance == 50

        entry = (await session.execute(select(LedgerEntry))).scalar_one()
        assert entry.entry_type == LedgerEntryType.REFERRAL_BONUS
        assert entry.account_id == referrer.id
        assert entry.reference_id == str(result.account.id)


@pytest.mark.asyncio
async def test_unresolvable_code_changes_nothing(session_factory) -> None:
    async with session_factory() as session:
        await seed_app_settings(session)
        registry = AccountRegistry(session)
        existing = await create_account(session, 3003, balance=10)

        result = await registry.register_account(3004, "NOPE0000")

        assert result.created is True
        assert result.account.referred_by_id is None
        assert result.referral_points == 0
        refreshed = await fetch_account(session, existing.id)
        assert refreshed.balance == 10
        assert (await session.execute(select(LedgerEntry))).scalars().all() == []


@pytest.mark.asyncio
async def test_known_external_id_returns_existing_without_credit(session_factory) -> None:
    async with session_factory() as session:
        await seed_app_settings(session, referral_reward_points=50)
        registry = AccountRegistry(session)
        referrer = (await registry.register_account(3005)).account
        first = await registry.register_account(3006)

        again = await registry.register_account(3006, referrer.referral_code)

        assert again.created is False
        assert again.account.id == first.account.id
        assert again.account.referred_by_id is None
        refreshed = await fetch_account(session, referrer.id)
        assert refreshed.balance == 0
        accounts = (await session.execute(select(Account))).scalars().all()
        assert len(accounts) == 2


@pytest.mark.asyncio
async def test_banned_referrer_is_linked_but_not_credited(session_factory) -> None:
    async with session_factory() as session:
        await seed_app_settings(session, referral_reward_points=50)
        referrer = await create_account(session, 3007, referral_code="BANNED01", banned=True)
        registry = AccountRegistry(session)

        result = await registry.register_account(3008, "BANNED01")

        assert result.account.referred_by_id == referrer.id
        assert result.referral_points == 0
        refreshed = await fetch_account(session, referrer.id)
        assert refreshed.balance == 0

        with pytest.raises(AccountBanned):
            await RewardClaimEngine(session).credit_referral(referrer.id, 10)


@pytest.mark.asyncio
async def test_referral_summary_and_account_view(session_factory) -> None:
    async with session_factory() as session:
        await seed_app_settings(session, referral_reward_points=25, ad_cooldown_seconds=60)
        registry = AccountRegistry(session)
        referrer = (await registry.register_account(3009)).account
        await registry.register_account(3010, referrer.referral_code, first_name="Ann")
        await registry.register_account(3011, referrer.referral_code, first_name="Ben")

        summary = await registry.list_referrals(referrer.id)
        assert {account.first_name for account in summary.referrals} == {"Ann", "Ben"}
        assert summary.total_points == 50

        await RewardClaimEngine(session).claim_ad(referrer.id, now=T0)
        view = await registry.get_account(referrer.id, now=T0 + dt.timedelta(seconds=10))
        assert view.account.balance == 50 + 5
        assert view.next_daily_claim_at is None
        assert view.next_ad_claim_at == T0 + dt.timedelta(seconds=60)

        later = await registry.get_account(referrer.id, now=T0 + dt.timedelta(minutes=5))
        assert later.next_ad_claim_at is None

        with pytest.raises(AccountNotFound):
            await registry.list_referrals(uuid4())


@pytest.mark.asyncio
async def test_ledger_pagination_with_cursor(session_factory) -> None:
    async with session_factory() as session:
        await seed_app_settings(session)
        account = await create_account(session, 3012, balance=1000)
        engine = RewardClaimEngine(session)
        workflow = WithdrawalWorkflow(session)
        registry = AccountRegistry(session)

        await engine.claim_daily(account.id, now=T0)
        await engine.claim_ad(account.id, now=T0 + dt.timedelta(minutes=1))
        await workflow.request_withdrawal(
            account.id, 100, WithdrawalMethod.STARS, now=T0 + dt.timedelta(minutes=2)
        )

        page, cursor = await registry.list_ledger(account.id, limit=2)
        assert [entry.entry_type for entry in page] == [
            LedgerEntryType.WITHDRAWAL_DEBIT,
            LedgerEntryType.AD_CLAIM,
        ]
        assert cursor is not None

        token = encode_ledger_cursor(*cursor)
        assert decode_ledger_cursor(token) == cursor

        rest, next_cursor = await registry.list_ledger(account.id, limit=2, cursor=cursor)
        assert [entry.entry_type for entry in rest] == [LedgerEntryType.DAILY_CLAIM]
        assert next_cursor is None

        only_claims, _ = await registry.list_ledger(account.id, entry_types=[LedgerEntryType.AD_CLAIM])
        assert len(only_claims) == 1


@pytest.mark.asyncio
async def test_ban_toggle_and_dashboard_stats(session_factory) -> None:
    async with session_factory() as session:
        await seed_app_settings(session)
        registry = AccountRegistry(session)
        first = await create_account(session, 3013, balance=400)
        await create_account(session, 3014, balance=100)
        await create_task(session, title="Active")
        await create_task(session, title="Retired", is_active=False)
        await WithdrawalWorkflow(session).request_withdrawal(first.id, 50, WithdrawalMethod.STARS)

        banned = await registry.set_banned(first.id, True)
        assert banned.banned is True

        with pytest.raises(AccountBanned):
            await RewardClaimEngine(session).claim_daily(first.id)

        stats = await registry.dashboard_stats()
        assert stats.total_accounts == 2
        assert stats.banned_accounts == 1
        assert stats.total_points == 450
        assert stats.pending_withdrawals == 1
        assert stats.active_tasks == 1

        restored = await registry.set_banned(first.id, False)
        assert restored.banned is False

        with pytest.raises(AccountNotFound):
            await registry.set_banned(uuid4(), True)


@pytest.mark.asyncio
async def test_list_accounts_newest_first_with_ban_filter(session_factory) -> None:
    async with session_factory() as session:
        registry = AccountRegistry(session)
        oldest = Account(external_id=3101, referral_code="OLD00001", created_at=T0)
        middle = Account(external_id=3102, referral_code="MID00001", created_at=T0 + dt.timedelta(minutes=1))
        newest = Account(
            external_id=3103,
            referral_code="NEW00001",
            banned=True,
            created_at=T0 + dt.timedelta(minutes=2),
        )
        session.add_all([oldest, middle, newest])
        await session.commit()

        everyone = await registry.list_accounts()
        assert [account.external_id for account in everyone] == [3103, 3102, 3101]

        assert [account.external_id for account in await registry.list_accounts(2)] == [3103, 3102]
        assert [account.external_id for account in await registry.list_accounts(banned=True)] == [3103]
        assert [account.external_id for account in await registry.list_accounts(banned=False)] == [3102, 3101]
