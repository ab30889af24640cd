"""
CommissionEntry model.

One row per (source descendant, payment, beneficiary). The unique
constraint is the at-most-once guard for commission payouts.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    DECIMAL,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from referral_ledger.models.base import Base
from referral_ledger.models.enums import PayoutStatus


class CommissionEntry(Base):
    """
    CommissionEntry entity.

    A `completed` entry has been credited to the beneficiary's wallet in
    the same transaction that inserted it. A `failed` entry records a
    payout whose credit was rejected; the retry sweep completes it later.
    """

    __tablename__ = "commission_entries"
    __table_args__ = (
        UniqueConstraint(
            "source_descendant_id",
            "payment_id",
            "beneficiary_id",
            name="uq_commission_entries_source_payment_beneficiary",
        ),
        Index("idx_commission_entries_beneficiary", "beneficiary_id"),
        Index("idx_commission_entries_status", "status"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    beneficiary_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("participants.id", ondelete="CASCADE"),
        nullable=False,
    )
    source_descendant_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("participants.id", ondelete="CASCADE"),
        nullable=False,
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(DECIMAL(18, 2), nullable=False)
    payment_id: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=PayoutStatus.COMPLETED, nullable=False
    )

    # Retry bookkeeping
    attempts: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<CommissionEntry(id={self.id}, beneficiary_id={self.beneficiary_id}, "
            f"source={self.source_descendant_id}, level={self.level}, "
            f"amount={self.amount}, status={self.status})>"
        )

    @property
    def is_completed(self) -> bool:
        """Whether the payout reached the wallet."""
        return self.status == PayoutStatus.COMPLETED
