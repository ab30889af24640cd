"""
Participant model.

Registered member of the referral network. Owned by the account
subsystem; this package only flips the activation flag and issues
atomic balance updates against it.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    DECIMAL,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
)
from sqlalchemy.orm import Mapped, mapped_column

from referral_ledger.models.base import Base


class Participant(Base):
    """Participant model - referral network members."""

    __tablename__ = "participants"
    __table_args__ = (
        CheckConstraint(
            "wallet_balance >= 0",
            name="check_participant_balance_non_negative",
        ),
        CheckConstraint(
            "lifetime_earned >= 0",
            name="check_participant_earned_non_negative",
        ),
        CheckConstraint(
            "lifetime_withdrawn >= 0",
            name="check_participant_withdrawn_non_negative",
        ),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    # Immutable once set
    sponsor_id: Mapped[int | None] = mapped_column(
        ForeignKey("participants.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Flips once, false -> true, on activation payment
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False, index=True
    )

    # Wallet
    wallet_balance: Mapped[Decimal] = mapped_column(
        DECIMAL(18, 2), default=Decimal("0"), nullable=False
    )
    lifetime_earned: Mapped[Decimal] = mapped_column(
        DECIMAL(18, 2), default=Decimal("0"), nullable=False
    )
    lifetime_withdrawn: Mapped[Decimal] = mapped_column(
        DECIMAL(18, 2), default=Decimal("0"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    activated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Participant(id={self.id}, sponsor_id={self.sponsor_id}, "
            f"active={self.is_active}, balance={self.wallet_balance})>"
        )
