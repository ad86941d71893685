"""Append-only audit trail of balance mutations."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    String,
    JSON,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from rewards_api.db.base import Base, enum_values


class LedgerEntryType(str, Enum):
    """Ledger entry types, one per balance-affecting operation."""

    DAILY_CLAIM = "daily_claim"
    AD_CLAIM = "ad_claim"
    TASK_REWARD = "task_reward"
    REFERRAL_BONUS = "referral_bonus"
    WITHDRAWAL_DEBIT = "withdrawal_debit"
    WITHDRAWAL_REFUND = "withdrawal_refund"


class LedgerEntry(Base):
    """Ledger entry storing a signed points adjustment and the resulting balance."""

    __tablename__ = "ledger_entries"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    account_id = Column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    entry_type = Column(
        SqlEnum(LedgerEntryType, name="ledger_entry_type", values_callable=enum_values),
        nullable=False,
    )
    amount = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    reference_id = Column(String, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    account = relationship("Account", back_populates="ledger_entries")
