"""Reward claim engine: daily, ad, task and referral credits."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, NoReturn
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from rewards_api.core.settings import Settings, settings as default_settings
from rewards_api.models.account import Account
from rewards_api.models.ledger import LedgerEntryType
from rewards_api.models.task import Task, TaskCompletion
from rewards_api.observability.ledger import get_ledger_store

from .errors import (
    AccountBanned,
    AccountNotFound,
    AlreadyCompleted,
    CooldownActive,
    TaskInactive,
    TaskNotFound,
)
from .events import LedgerChanged, LedgerEventBus, get_ledger_event_bus
from .snapshot import load_settings_snapshot
from .store import (
    append_ledger_entry,
    claim_with_cooldown,
    ensure_aware,
    fetch_account,
    increment_balance,
    require_active_account,
    unit_of_work,
    utcnow,
)


@dataclass
class ClaimResult:
    """Outcome of a successful claim."""

    account_id: UUID
    new_balance: int
    awarded_points: int
    claimed_at: datetime


@dataclass
class TaskView:
    """Active task annotated with the caller's completion state."""

    id: UUID
    title: str
    description: str | None
    url: str | None
    reward_points: int
    completed: bool


class RewardClaimEngine:
    """Evaluates claim eligibility and applies balance increments atomically."""

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

    @property
    def daily_window(self) -> timedelta:
        return timedelta(hours=self._config.daily_claim_window_hours)

    async def claim_daily(self, account_id: UUID, *, now: datetime | None = None) -> ClaimResult:
        """Award the daily reward once per rolling window."""

        now = now or self._clock()
        async with unit_of_work(self._db, operation="claim_daily"):
            snapshot = await load_settings_snapshot(self._db, config=self._config)
            result = await self._claim_timed(
                account_id,
                claim="daily",
                entry_type=LedgerEntryType.DAILY_CLAIM,
                timestamp_column=Account.last_daily_claim_at,
                window=self.daily_window,
                points=snapshot.daily_reward_points,
                now=now,
                metadata={"settingsVersion": snapshot.version},
            )
        self._after_claim("daily", result)
        return result

    async def claim_ad(
        self,
        account_id: UUID,
        *,
        ad_display_failed: bool = False,
        now: datetime | None = None,
    ) -> ClaimResult:
        """Award the ad reward; a failed ad display never blocks the award."""

        now = now or self._clock()
        async with unit_of_work(self._db, operation="claim_ad"):
            snapshot = await load_settings_snapshot(self._db, config=self._config)
            result = await self._claim_timed(
                account_id,
                claim="ad",
                entry_type=LedgerEntryType.AD_CLAIM,
                timestamp_column=Account.last_ad_claim_at,
                window=timedelta(seconds=snapshot.ad_cooldown_seconds),
                points=snapshot.ad_reward_points,
                now=now,
                metadata={
                    "settingsVersion": snapshot.version,
                    "adDisplayFailed": ad_display_failed,
                    "adBlockId": snapshot.ad_block_id,
                },
            )
        if ad_display_failed:
            logger.warning("Ad reward granted without confirmed display", account_id=str(account_id))
        self._after_claim("ad", result)
        return result

    async def complete_task(
        self,
        account_id: UUID,
        task_id: UUID,
        *,
        now: datetime | None = None,
    ) -> ClaimResult:
        """Record a task completion and credit its reward in one transaction."""

        now = now or self._clock()
        store = get_ledger_store()
        try:
            async with unit_of_work(self._db, operation="complete_task"):
                await require_active_account(self._db, account_id)
                task = await self._db.get(Task, task_id)
                if task is None:
                    raise TaskNotFound(task_id)
                if not task.is_active:
                    raise TaskInactive(task_id)

                existing = await self._db.execute(
                    select(TaskCompletion.id).where(
                        TaskCompletion.account_id == account_id,
                        TaskCompletion.task_id == task_id,
                    )
                )
                if existing.scalar_one_or_none() is not None:
                    raise AlreadyCompleted(account_id, task_id)

                reward_points = int(task.reward_points or 0)
                self._db.add(TaskCompletion(account_id=account_id, task_id=task_id, completed_at=now))
                try:
                    await self._db.flush()
                except IntegrityError as exc:
                    raise AlreadyCompleted(account_id, task_id) from exc

                new_balance = await increment_balance(self._db, account_id, reward_points)
                if new_balance is None:
                    raise AccountBanned(account_id)
                append_ledger_entry(
                    self._db,
                    account_id=account_id,
                    entry_type=LedgerEntryType.TASK_REWARD,
                    amount=reward_points,
                    balance_after=new_balance,
                    reference_id=str(task_id),
                    metadata={"taskTitle": task.title},
                    created_at=now,
                )
        except AlreadyCompleted:
            store.record_claim("task", "already_completed")
            raise

        result = ClaimResult(
            account_id=account_id,
            new_balance=new_balance,
            awarded_points=reward_points,
            claimed_at=now,
        )
        logger.info(
            "Task reward credited",
            account_id=str(account_id),
            task_id=str(task_id),
            points=reward_points,
        )
        self._after_claim("task", result, reference_id=str(task_id))
        return result

    async def credit_referral(
        self,
        referrer_id: UUID,
        amount: int,
        *,
        referred_account_id: UUID | None = None,
        now: datetime | None = None,
    ) -> int:
        """Credit a referrer in its own transaction and return the new balance."""

        async with unit_of_work(self._db, operation="credit_referral"):
            new_balance = await self.apply_referral_credit(
                referrer_id,
                amount,
                referred_account_id=referred_account_id,
                now=now,
            )
        self.publish_referral_credit(
            referrer_id, amount, new_balance, referred_account_id=referred_account_id
        )
        return new_balance

    async def apply_referral_credit(
        self,
        referrer_id: UUID,
        amount: int,
        *,
        referred_account_id: UUID | None = None,
        now: datetime | None = None,
    ) -> int:
        """Stage a referral increment inside the caller's transaction."""

        if amount < 0:
            raise ValueError("Referral credit must be non-negative")

        new_balance = await increment_balance(self._db, referrer_id, amount)
        if new_balance is None:
            account = await fetch_account(self._db, referrer_id)
            if account is None:
                raise AccountNotFound(referrer_id)
            raise AccountBanned(referrer_id)

        append_ledger_entry(
            self._db,
            account_id=referrer_id,
            entry_type=LedgerEntryType.REFERRAL_BONUS,
            amount=amount,
            balance_after=new_balance,
            reference_id=str(referred_account_id) if referred_account_id else None,
            created_at=now or self._clock(),
        )
        return new_balance

    def publish_referral_credit(
        self,
        referrer_id: UUID,
        amount: int,
        new_balance: int,
        *,
        referred_account_id: UUID | None = None,
    ) -> None:
        get_ledger_store().record_referral("credited", amount)
        logger.info("Referral bonus credited", referrer_id=str(referrer_id), points=amount)
        self._events.publish(
            LedgerChanged(
                account_id=referrer_id,
                kind=LedgerEntryType.REFERRAL_BONUS.value,
                balance=new_balance,
                reference_id=str(referred_account_id) if referred_account_id else None,
            )
        )

    async def list_tasks(self, account_id: UUID) -> list[TaskView]:
        """Return active tasks with the account's completion flags."""

        account = await fetch_account(self._db, account_id)
        if account is None:
            raise AccountNotFound(account_id)

        tasks_result = await self._db.execute(
            select(Task).where(Task.is_active.is_(True)).order_by(Task.created_at.desc())
        )
        completions_result = await self._db.execute(
            select(TaskCompletion.task_id).where(TaskCompletion.account_id == account_id)
        )
        completed_ids = set(completions_result.scalars().all())
        tasks = list(tasks_result.scalars().all())
        logger.debug("Fetched tasks", account_id=str(account_id), count=len(tasks))
        return [
            TaskView(
                id=task.id,
                title=task.title,
                description=task.description,
                url=task.url,
                reward_points=int(task.reward_points or 0),
                completed=task.id in completed_ids,
            )
            for task in tasks
        ]

    async def _claim_timed(
        self,
        account_id: UUID,
        *,
        claim: str,
        entry_type: LedgerEntryType,
        timestamp_column: InstrumentedAttribute,
        window: timedelta,
        points: int,
        now: datetime,
        metadata: dict[str, Any],
    ) -> ClaimResult:
        new_balance = await claim_with_cooldown(
            self._db,
            account_id,
            timestamp_column=timestamp_column,
            cutoff=now - window,
            now=now,
            points=points,
        )
        if new_balance is None:
            await self._raise_claim_rejection(account_id, claim, timestamp_column, window, now)

        append_ledger_entry(
            self._db,
            account_id=account_id,
            entry_type=entry_type,
            amount=points,
            balance_after=new_balance,
            metadata=metadata,
            created_at=now,
        )
        return ClaimResult(
            account_id=account_id,
            new_balance=new_balance,
            awarded_points=points,
            claimed_at=now,
        )

    async def _raise_claim_rejection(
        self,
        account_id: UUID,
        claim: str,
        timestamp_column: InstrumentedAttribute,
        window: timedelta,
        now: datetime,
    ) -> NoReturn:
        account = await fetch_account(self._db, account_id)
        if account is None:
            raise AccountNotFound(account_id)
        if account.banned:
            raise AccountBanned(account_id)

        last_claim = getattr(account, timestamp_column.key)
        retry_after = 1
        if last_claim is not None:
            remaining = ensure_aware(last_claim) + window - now
            retry_after = max(int(remaining.total_seconds()), 1)
        get_ledger_store().record_claim(claim, "cooldown")
        logger.info(
            "Claim rejected by cooldown",
            account_id=str(account_id),
            claim=claim,
            retry_after_seconds=retry_after,
        )
        raise CooldownActive(claim, retry_after)

    def _after_claim(self, claim: str, result: ClaimResult, *, reference_id: str | None = None) -> None:
        get_ledger_store().record_claim(claim, "awarded", result.awarded_points)
        if claim != "task":
            logger.info(
                "Claim awarded",
                account_id=str(result.account_id),
                claim=claim,
                points=result.awarded_points,
                balance=result.new_balance,
            )
        self._events.publish(
            LedgerChanged(
                account_id=result.account_id,
                kind=f"{claim}_claim" if claim != "task" else LedgerEntryType.TASK_REWARD.value,
                balance=result.new_balance,
                reference_id=reference_id,
                occurred_at=result.claimed_at,
            )
        )


__all__ = ["ClaimResult", "RewardClaimEngine", "TaskView"]
