"""
MilestoneClaim model.

One row per (beneficiary, level, threshold): a team-size milestone can
pay out only once per beneficiary. A `failed` claim reserves the
threshold until the retry sweep credits it.
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


class MilestoneClaim(Base):
    """MilestoneClaim entity - granted team-size rewards."""

    __tablename__ = "milestone_claims"
    __table_args__ = (
        UniqueConstraint(
            "beneficiary_id",
            "level",
            "threshold",
            name="uq_milestone_claims_beneficiary_level_threshold",
        ),
        Index("idx_milestone_claims_status", "status"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    beneficiary_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("participants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    threshold: Mapped[int] = mapped_column(Integer, nullable=False)
    reward_amount: Mapped[Decimal] = mapped_column(
        DECIMAL(18, 2), nullable=False
    )
    title: Mapped[str | None] = mapped_column(String(100), nullable=True)
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
            f"<MilestoneClaim(beneficiary_id={self.beneficiary_id}, "
            f"level={self.level}, threshold={self.threshold}, "
            f"reward={self.reward_amount}, status={self.status})>"
        )

    @property
    def is_completed(self) -> bool:
        """Whether the reward reached the wallet."""
        return self.status == PayoutStatus.COMPLETED
