"""Atomic account-store primitives shared by the ledger services.

Every balance change here is a single conditional ``UPDATE ... RETURNING`` so that
concurrent handlers never apply a stale increment base. Nothing in this module commits;
callers group primitives inside :func:`unit_of_work`.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator
from uuid import UUID

from loguru import logger
from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from rewards_api.models.account import Account
from rewards_api.models.ledger import LedgerEntry, LedgerEntryType
from rewards_api.observability.tracing import get_ledger_tracer

from .errors import AccountBanned, AccountNotFound, StorageUnavailable


@asynccontextmanager
async def unit_of_work(session: AsyncSession, *, operation: str) -> AsyncIterator[AsyncSession]:
    """Commit on success; roll back everything on any failure."""

    with get_ledger_tracer().start_as_current_span(f"ledger.{operation}") as span:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            span.record_exception(exc)
            logger.error("Ledger storage failure", operation=operation, error=str(exc))
            raise StorageUnavailable(f"Storage unavailable during {operation}") from exc
        except BaseException as exc:
            await session.rollback()
            span.set_attribute("ledger.error", type(exc).__name__)
            raise


async def fetch_account(session: AsyncSession, account_id: UUID) -> Account | None:
    """Read the current row, bypassing any stale identity-map copy."""

    stmt = select(Account).where(Account.id == account_id).execution_options(populate_existing=True)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def require_active_account(session: AsyncSession, account_id: UUID) -> Account:
    account = await fetch_account(session, account_id)
    if account is None:
        raise AccountNotFound(account_id)
    if account.banned:
        raise AccountBanned(account_id)
    return account


async def claim_with_cooldown(
    session: AsyncSession,
    account_id: UUID,
    *,
    timestamp_column: InstrumentedAttribute,
    cutoff: datetime,
    now: datetime,
    points: int,
) -> int | None:
    """Credit ``points`` and stamp ``now`` only if the last claim is unset or at/before ``cutoff``.

    Returns the new balance, or ``None`` when no row qualified.
    """

    stmt = (
        update(Account)
        .where(
            Account.id == account_id,
            Account.banned.is_(False),
            or_(timestamp_column.is_(None), timestamp_column <= cutoff),
        )
        .values({Account.balance: Account.balance + points, timestamp_column: now})
        .returning(Account.balance)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def increment_balance(session: AsyncSession, account_id: UUID, delta: int) -> int | None:
    """Add a non-negative ``delta`` to an active account's balance."""

    if delta < 0:
        raise ValueError("Increments must be non-negative")
    stmt = (
        update(Account)
        .where(Account.id == account_id, Account.banned.is_(False))
        .values(balance=Account.balance + delta)
        .returning(Account.balance)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def refund_balance(session: AsyncSession, account_id: UUID, amount: int) -> int | None:
    """Return previously debited points; applies to banned accounts too."""

    if amount <= 0:
        raise ValueError("Refunds must be positive")
    stmt = (
        update(Account)
        .where(Account.id == account_id)
        .values(balance=Account.balance + amount)
        .returning(Account.balance)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def debit_balance(session: AsyncSession, account_id: UUID, amount: int) -> int | None:
    """Subtract ``amount`` only while the balance covers it."""

    if amount <= 0:
        raise ValueError("Debits must be positive")
    stmt = (
        update(Account)
        .where(
            Account.id == account_id,
            Account.banned.is_(False),
            Account.balance >= amount,
        )
        .values(balance=Account.balance - amount)
        .returning(Account.balance)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


def append_ledger_entry(
    session: AsyncSession,
    *,
    account_id: UUID,
    entry_type: LedgerEntryType,
    amount: int,
    balance_after: int,
    reference_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    created_at: datetime | None = None,
) -> LedgerEntry:
    entry = LedgerEntry(
        account_id=account_id,
        entry_type=entry_type,
        amount=amount,
        balance_after=balance_after,
        reference_id=reference_id,
        metadata_json=metadata or {},
    )
    if created_at is not None:
        entry.created_at = created_at
    session.add(entry)
    return entry


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything stored is UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


__all__ = [
    "append_ledger_entry",
    "claim_with_cooldown",
    "debit_balance",
    "ensure_aware",
    "fetch_account",
    "increment_balance",
    "refund_balance",
    "require_active_account",
    "unit_of_work",
    "utcnow",
]
