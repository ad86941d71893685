"""Withdrawal requests subject to administrative approval."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from rewards_api.db.base import Base, enum_values


class WithdrawalMethod(str, Enum):
    """Payout rails a member can request."""

    TON = "TON"
    STARS = "STARS"

    @property
    def requires_wallet_address(self) -> bool:
        return self is WithdrawalMethod.TON


class WithdrawalStatus(str, Enum):
    """Lifecycle for withdrawal requests; approved and rejected are terminal."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class WithdrawalRequest(Base):
    """Debit-now, pay-out-later request awaiting an operator decision."""

    __tablename__ = "withdrawal_requests"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_withdrawal_requests_amount_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    account_id = Column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount = Column(Integer, nullable=False)
    method = Column(
        SqlEnum(WithdrawalMethod, name="withdrawal_method", values_callable=enum_values),
        nullable=False,
    )
    wallet_address = Column(String, nullable=True)
    status = Column(
        SqlEnum(WithdrawalStatus, name="withdrawal_status", values_callable=enum_values),
        nullable=False,
        default=WithdrawalStatus.PENDING,
        server_default=WithdrawalStatus.PENDING.value,
        index=True,
    )
    processed_at = Column(DateTime(timezone=True), nullable=True)
    processed_by = Column(String, nullable=True)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    account = relationship("Account", back_populates="withdrawals")
