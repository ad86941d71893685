"""Mini-app account records."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    false,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from rewards_api.db.base import Base


class Account(Base):
    """Internal representation of one platform identity and its points balance."""

    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
        CheckConstraint("referred_by_id IS NULL OR referred_by_id <> id", name="ck_accounts_no_self_referral"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    external_id = Column(BigInteger, nullable=False, unique=True, index=True)
    username = Column(String, nullable=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    balance = Column(Integer, nullable=False, default=0, server_default="0")
    referral_code = Column(String, nullable=False, unique=True, index=True)
    referred_by_id = Column(
        UUID(as_uuid=True),
        ForeignKey("accounts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    last_daily_claim_at = Column(DateTime(timezone=True), nullable=True)
    last_ad_claim_at = Column(DateTime(timezone=True), nullable=True)
    banned = Column(Boolean, nullable=False, default=False, server_default=false())
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    referrer = relationship("Account", remote_side=[id])
    ledger_entries = relationship("LedgerEntry", back_populates="account")
    withdrawals = relationship("WithdrawalRequest", back_populates="account")
