"""Account registration, referral credit propagation and account-level reads."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Sequence, Tuple
from uuid import UUID, uuid4

from loguru import logger
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.core.settings import Settings, settings as default_settings
from rewards_api.models.account import Account
from rewards_api.models.ledger import LedgerEntry, LedgerEntryType
from rewards_api.models.task import Task
from rewards_api.models.withdrawal import WithdrawalRequest, WithdrawalStatus
from rewards_api.observability.ledger import get_ledger_store

from .errors import AccountNotFound, StorageUnavailable
from .events import LedgerEventBus, get_ledger_event_bus
from .rewards import RewardClaimEngine
from .snapshot import load_settings_snapshot
from .store import ensure_aware, fetch_account, unit_of_work, utcnow


@dataclass(slots=True)
class RegistrationResult:
    account: Account
    created: bool
    referrer_id: UUID | None = None
    referral_points: int = 0


@dataclass(slots=True)
class AccountView:
    """Account snapshot enriched with the next eligible claim times."""

    account: Account
    next_daily_claim_at: datetime | None
    next_ad_claim_at: datetime | None


@dataclass(slots=True)
class ReferralSummary:
    referrals: list[Account]
    total_points: int


@dataclass(slots=True)
class DashboardStats:
    total_accounts: int
    banned_accounts: int
    total_points: int
    pending_withdrawals: int
    active_tasks: int

    def as_dict(self) -> dict[str, int]:
        return {
            "totalAccounts": self.total_accounts,
            "bannedAccounts": self.banned_accounts,
            "totalPoints": self.total_points,
            "pendingWithdrawals": self.pending_withdrawals,
            "activeTasks": self.active_tasks,
        }


class AccountRegistry:
    """Create accounts from platform identities and propagate referral credit."""

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
        self._rewards = RewardClaimEngine(
            db_session, config=self._config, event_bus=self._events, clock=clock
        )

    async def register_account(
        self,
        external_id: int,
        referral_code: str | None = None,
        *,
        username: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
        now: datetime | None = None,
    ) -> RegistrationResult:
        """Return the account for ``external_id``, creating and crediting the referrer once."""

        existing = await self._find_by_external_id(external_id)
        if existing is not None:
            return RegistrationResult(account=existing, created=False, referrer_id=existing.referred_by_id)

        now = now or self._clock()
        referrer: Account | None = None
        referral_points = 0
        referrer_balance = 0

        async with unit_of_work(self._db, operation="register_account"):
            snapshot = await load_settings_snapshot(self._db, config=self._config)
            referrer = await self._resolve_referrer(referral_code)
            account = Account(
                external_id=external_id,
                username=username,
                first_name=first_name,
                last_name=last_name,
                referral_code=await self._generate_unique_referral_code(),
                referred_by_id=referrer.id if referrer is not None else None,
                balance=0,
            )
            self._db.add(account)
            try:
                await self._db.flush()
            except IntegrityError as exc:
                await self._db.rollback()
                logger.warning("Detected race when registering account", external_id=external_id)
                existing = await self._find_by_external_id(external_id)
                if existing is None:
                    raise StorageUnavailable("Account registration conflicted without a winner") from exc
                return RegistrationResult(
                    account=existing, created=False, referrer_id=existing.referred_by_id
                )

            if referrer is not None:
                if referrer.banned:
                    get_ledger_store().record_referral("skipped_banned")
                    logger.info(
                        "Referral credit skipped for banned referrer",
                        referrer_id=str(referrer.id),
                        account_id=str(account.id),
                    )
                else:
                    referral_points = snapshot.referral_reward_points
                    referrer_balance = await self._rewards.apply_referral_credit(
                        referrer.id,
                        referral_points,
                        referred_account_id=account.id,
                        now=now,
                    )

        await self._db.refresh(account)
        get_ledger_store().record_referral("registered")
        logger.info(
            "Registered account",
            account_id=str(account.id),
            external_id=external_id,
            referred_by=str(referrer.id) if referrer is not None else None,
        )
        if referral_points:
            self._rewards.publish_referral_credit(
                referrer.id, referral_points, referrer_balance, referred_account_id=account.id
            )
        return RegistrationResult(
            account=account,
            created=True,
            referrer_id=referrer.id if referrer is not None else None,
            referral_points=referral_points,
        )

    async def get_account(self, account_id: UUID, *, now: datetime | None = None) -> AccountView:
        account = await fetch_account(self._db, account_id)
        if account is None:
            raise AccountNotFound(account_id)
        snapshot = await load_settings_snapshot(self._db, config=self._config)
        now = now or self._clock()
        return AccountView(
            account=account,
            next_daily_claim_at=_next_eligible(
                account.last_daily_claim_at,
                timedelta(hours=self._config.daily_claim_window_hours),
                now,
            ),
            next_ad_claim_at=_next_eligible(
                account.last_ad_claim_at,
                timedelta(seconds=snapshot.ad_cooldown_seconds),
                now,
            ),
        )

    async def list_referrals(self, account_id: UUID) -> ReferralSummary:
        """Return accounts referred by ``account_id`` and the referral points it earned."""

        if await fetch_account(self._db, account_id) is None:
            raise AccountNotFound(account_id)

        referrals = await self._db.execute(
            select(Account).where(Account.referred_by_id == account_id).order_by(Account.created_at.desc())
        )
        earned = await self._db.execute(
            select(func.coalesce(func.sum(LedgerEntry.amount), 0)).where(
                LedgerEntry.account_id == account_id,
                LedgerEntry.entry_type == LedgerEntryType.REFERRAL_BONUS,
            )
        )
        return ReferralSummary(referrals=list(referrals.scalars().all()), total_points=int(earned.scalar_one()))

    async def list_ledger(
        self,
        account_id: UUID,
        *,
        limit: int | None = None,
        cursor: Tuple[datetime, UUID] | None = None,
        entry_types: Sequence[LedgerEntryType] | None = None,
    ) -> tuple[list[LedgerEntry], Tuple[datetime, UUID] | None]:
        """Return a paginated slice of the audit trail, newest first."""

        if await fetch_account(self._db, account_id) is None:
            raise AccountNotFound(account_id)

        bounded_limit = max(1, min(limit or self._config.ledger_page_size, 200))
        stmt = (
            select(LedgerEntry)
            .where(LedgerEntry.account_id == account_id)
            .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
        )
        if entry_types:
            stmt = stmt.where(LedgerEntry.entry_type.in_(list(entry_types)))
        if cursor:
            cursor_time, cursor_id = cursor
            stmt = stmt.where(
                or_(
                    LedgerEntry.created_at < cursor_time,
                    and_(LedgerEntry.created_at == cursor_time, LedgerEntry.id < cursor_id),
                )
            )

        result = await self._db.execute(stmt.limit(bounded_limit + 1))
        rows = list(result.scalars().all())
        entries = rows[:bounded_limit]
        next_cursor: Tuple[datetime, UUID] | None = None
        if len(rows) > bounded_limit and entries:
            tail = entries[-1]
            next_cursor = (ensure_aware(tail.created_at), tail.id)
        return entries, next_cursor

    async def set_banned(self, account_id: UUID, banned: bool) -> Account:
        async with unit_of_work(self._db, operation="set_banned"):
            stmt = (
                update(Account)
                .where(Account.id == account_id)
                .values(banned=banned)
                .returning(Account.id)
                .execution_options(synchronize_session=False)
            )
            if (await self._db.execute(stmt)).scalar_one_or_none() is None:
                raise AccountNotFound(account_id)

        logger.info("Account ban state changed", account_id=str(account_id), banned=banned)
        account = await fetch_account(self._db, account_id)
        if account is None:
            raise AccountNotFound(account_id)
        return account

    async def list_accounts(self, limit: int = 100, *, banned: bool | None = None) -> list[Account]:
        """Return accounts newest first, optionally filtered by ban state."""

        stmt = select(Account).order_by(Account.created_at.desc(), Account.id.desc())
        if banned is not None:
            stmt = stmt.where(Account.banned.is_(banned))
        result = await self._db.execute(stmt.limit(max(1, min(limit, 500))))
        return list(result.scalars().all())

    async def dashboard_stats(self) -> DashboardStats:
        accounts = await self._db.execute(
            select(
                func.count(Account.id),
                func.coalesce(func.sum(Account.balance), 0),
            )
        )
        total_accounts, total_points = accounts.one()
        banned = await self._db.execute(select(func.count(Account.id)).where(Account.banned.is_(True)))
        pending = await self._db.execute(
            select(func.count(WithdrawalRequest.id)).where(WithdrawalRequest.status == WithdrawalStatus.PENDING)
        )
        tasks = await self._db.execute(select(func.count(Task.id)).where(Task.is_active.is_(True)))
        return DashboardStats(
            total_accounts=int(total_accounts),
            banned_accounts=int(banned.scalar_one()),
            total_points=int(total_points),
            pending_withdrawals=int(pending.scalar_one()),
            active_tasks=int(tasks.scalar_one()),
        )

    async def _find_by_external_id(self, external_id: int) -> Account | None:
        result = await self._db.execute(
            select(Account).where(Account.external_id == external_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _resolve_referrer(self, referral_code: str | None) -> Account | None:
        code = (referral_code or "").strip().upper()
        if not code:
            return None
        result = await self._db.execute(
            select(Account).where(Account.referral_code == code).execution_options(populate_existing=True)
        )
        referrer = result.scalar_one_or_none()
        if referrer is None:
            logger.warning("Referral code not found", code=code)
        return referrer

    async def _generate_unique_referral_code(self) -> str:
        candidate = uuid4().hex[: self._config.referral_code_length].upper()
        result = await self._db.execute(select(Account.id).where(Account.referral_code == candidate))
        if result.scalar_one_or_none() is not None:
            return await self._generate_unique_referral_code()
        return candidate


def _next_eligible(last_claim: datetime | None, window: timedelta, now: datetime) -> datetime | None:
    if last_claim is None:
        return None
    eligible_at = ensure_aware(last_claim) + window
    return eligible_at if eligible_at > now else None


def encode_ledger_cursor(timestamp: datetime, identifier: UUID) -> str:
    """Encode pagination cursor for chronological queries."""

    payload = f"{timestamp.isoformat()}|{identifier}".encode("utf-8")
    return base64.urlsafe_b64encode(payload).decode("utf-8")


def decode_ledger_cursor(cursor: str) -> Tuple[datetime, UUID]:
    """Decode pagination cursor into datetime and UUID parts."""

    raw = base64.urlsafe_b64decode(cursor.encode("utf-8")).decode("utf-8")
    timestamp_str, identifier_str = raw.split("|", 1)
    return ensure_aware(datetime.fromisoformat(timestamp_str)), UUID(identifier_str)


__all__ = [
    "AccountRegistry",
    "AccountView",
    "DashboardStats",
    "ReferralSummary",
    "RegistrationResult",
    "decode_ledger_cursor",
    "encode_ledger_cursor",
]
